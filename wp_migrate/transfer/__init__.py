"""
File transfer for wp-migrate.
"""

from wp_migrate.transfer.rsync import RsyncTransfer, TransferResult

__all__ = [
    "RsyncTransfer",
    "TransferResult",
]
