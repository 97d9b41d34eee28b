"""Accumulator for part receipts collected by concurrent transfers."""

import asyncio

from archive_stager.exceptions import ReceiptContractError
from archive_stager.models import PartReceipt


class ReceiptLedger:
    """Record one receipt per part number and hand them out in part order."""

    def __init__(self, total_parts: int) -> None:
        """Initialise an empty ledger for ``total_parts`` parts."""
        self._total_parts = total_parts
        self._receipts: dict[int, PartReceipt] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._receipts)

    async def record(self, receipt: PartReceipt) -> int:
        """Store a receipt.

        Returns:
            The number of receipts recorded so far, this one included.

        Raises:
            ReceiptContractError: If the part number is out of range or a
                receipt for it was already recorded.
        """
        async with self._lock:
            if not 1 <= receipt.part_number <= self._total_parts:
                raise ReceiptContractError(
                    f"Receipt for part {receipt.part_number} is outside "
                    f"1..{self._total_parts}"
                )
            if receipt.part_number in self._receipts:
                raise ReceiptContractError(
                    f"Duplicate receipt for part {receipt.part_number}"
                )
            self._receipts[receipt.part_number] = receipt
            return len(self._receipts)

    def sorted_receipts(self) -> list[PartReceipt]:
        """Return every receipt ascending by part number.

        Raises:
            ReceiptContractError: If any part in ``1..total_parts`` is missing.
        """
        missing = set(range(1, self._total_parts + 1)) - self._receipts.keys()
        if missing:
            raise ReceiptContractError(f"Missing receipts for parts {sorted(missing)}")
        return [self._receipts[n] for n in sorted(self._receipts)]
