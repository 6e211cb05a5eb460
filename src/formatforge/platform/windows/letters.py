"""
Temporary drive letters for unlettered volumes.

diskpart and format.com address volumes by letter, so a volume without one
gets a letter attached with ``mountvol`` for the length of a format and
detached again afterwards. Releasing is the caller's job; see
``FormatOrchestrator``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from formatforge.core.errors import VolumeQueryError
from formatforge.core.logging import get_logger
from formatforge.core.models import LetterLease
from formatforge.core.status import StatusChannel
from formatforge.platform.process import ProcessRunner, RunStatus
from formatforge.platform.windows.commands import mountvol_assign, mountvol_remove
from formatforge.platform.windows.volumes import VolumeEnumerator

logger = get_logger(__name__)

# Enumerate-then-assign must not interleave between two operations
_lease_lock = threading.Lock()


def _normalize(letter: str) -> str:
    return letter.strip().rstrip(":\\").upper()


class LetterLeaseManager:
    """Finds free drive letters and attaches/detaches them with mountvol."""

    def __init__(
        self,
        runner: ProcessRunner,
        enumerator: VolumeEnumerator,
        letters: Iterable[str] = "DEFGHIJKLMNOPQRSTUVWXYZ",
        timeout: float | None = None,
    ) -> None:
        self.runner = runner
        self.enumerator = enumerator
        self.letters = [_normalize(letter) for letter in letters]
        self.timeout = timeout

    def list_unused_letters(self) -> list[str]:
        """Letters in the working range that no volume uses, ascending."""
        used = self.enumerator.used_letters()
        return sorted(letter for letter in set(self.letters) if letter not in used)

    def acquire(
        self,
        device_id: str,
        letter: str,
        status: StatusChannel | None = None,
    ) -> tuple[bool, str]:
        """Attach ``letter`` to ``device_id``. Returns (success, message)."""
        letter = _normalize(letter)
        result = self.runner.run(
            mountvol_assign(letter, device_id),
            status=status,
            timeout=self.timeout,
        )

        if result.status is RunStatus.ELEVATION_DECLINED:
            return False, f"Assigning {letter}: was declined at the elevation prompt"
        if not result.success:
            logger.warning(
                "Drive letter assignment failed",
                letter=letter,
                device_id=device_id,
                error=result.error_text,
            )
            return False, f"mountvol could not assign {letter}: ({result.error_text})"

        logger.info("Drive letter assigned", letter=letter, device_id=device_id)
        return True, f"Temporary drive letter assigned: {letter}:"

    def release(self, letter: str, status: StatusChannel | None = None) -> tuple[bool, str]:
        """Detach ``letter`` from whatever volume holds it."""
        letter = _normalize(letter)
        result = self.runner.run(
            mountvol_remove(letter),
            status=status,
            timeout=self.timeout,
        )

        if result.status is RunStatus.ELEVATION_DECLINED:
            return False, f"Removing {letter}: was declined at the elevation prompt"
        if not result.success:
            logger.warning("Drive letter removal failed", letter=letter, error=result.error_text)
            return False, f"mountvol could not remove {letter}: ({result.error_text})"

        logger.info("Drive letter removed", letter=letter)
        return True, f"Temporary drive letter removed: {letter}:"

    def lease_free_letter(
        self,
        device_id: str,
        status: StatusChannel | None = None,
        preferred: str | None = None,
    ) -> tuple[LetterLease | None, str]:
        """
        Pick a free letter and attach it to ``device_id``.

        ``preferred`` is used when it is free; otherwise the lowest free
        letter is taken. Enumeration and assignment happen under one
        process-wide lock so two operations cannot pick the same letter.
        """
        with _lease_lock:
            try:
                free = self.list_unused_letters()
            except VolumeQueryError as e:
                return None, f"Cannot determine free drive letters: {e}"

            if not free:
                return None, "No free drive letter is available for a temporary mount"

            letter = free[0]
            if preferred:
                wanted = _normalize(preferred)
                if wanted in free:
                    letter = wanted
                elif status is not None:
                    status.warning(f"{wanted}: is not free; using {letter}: instead")

            ok, message = self.acquire(device_id, letter, status)
            if not ok:
                return None, message

        return LetterLease(device_id=device_id, letter=f"{letter}:"), message

    def release_lease(
        self,
        lease: LetterLease,
        status: StatusChannel | None = None,
    ) -> tuple[bool, str]:
        """Release a lease once; later calls are no-ops."""
        if not lease.active:
            return True, f"Lease on {lease.letter} already released"
        lease.active = False
        return self.release(lease.letter, status)
