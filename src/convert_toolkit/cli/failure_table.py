"""Failure table display for batch conversions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..core import ConversionCanceled

if TYPE_CHECKING:
    from ..processors import BatchItem

# Constants for table formatting
MAX_FILENAME_LENGTH = 37
FILENAME_TRUNCATE_LENGTH = 34
MAX_ERROR_MSG_LENGTH = 32
ERROR_MSG_TRUNCATE_LENGTH = 29


def _clip(text: str, limit: int, keep: int) -> str:
    return text[:keep] + "..." if len(text) > limit else text


def print_failure_table(failed_items: list[BatchItem]) -> None:
    """
    Print a simple table of failed conversions.

    Args:
        failed_items: Batch entries that carry an error

    """
    if not failed_items:
        return

    canceled = sum(1 for item in failed_items if isinstance(item.error, ConversionCanceled))

    print("\n" + "=" * 80)
    print(f"{'CONVERSION FAILURES':^80}")
    print("=" * 80)
    print(f"Total failed: {len(failed_items)} files ({canceled} canceled)\n")

    print(f"{'FILE':<40} | {'ERROR':<35}")
    print("-" * 80)

    for item in failed_items:
        filename = _clip(item.request.input_path.name, MAX_FILENAME_LENGTH, FILENAME_TRUNCATE_LENGTH)
        error_msg = _clip(str(item.error or "Unknown error"), MAX_ERROR_MSG_LENGTH, ERROR_MSG_TRUNCATE_LENGTH)
        print(f"{filename:<40} | {error_msg:<35}")

    print("\n💡 TIP: Check the FFmpeg installation, codecs, or run with -vv for the FFmpeg output\n")
