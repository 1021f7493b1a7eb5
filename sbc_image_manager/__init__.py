"""SBC image manager.

Prepares an ARM single-board-computer disk image for an interactive chroot
session on an x86 host, then puts everything back.

Core design goals:
- Every acquired resource is released, whatever ends the session
- The image's resolv.conf comes back exactly as it was
- Leftovers from a crashed run can be inspected and cleaned up
- Every external command is logged
"""

__all__ = []
