import sys
import shutil
import logging
from pathlib import Path
from typing import Callable, Iterator, List, Optional
from dpug_host import settings
from dpug_host.local.supervisor.state import LaunchCandidate

log = logging.getLogger(__name__)


def get_executable_path(base_path: Path) -> Path:
    """Returns the platform-specific full path for an executable."""
    return base_path.with_suffix(".exe") if sys.platform == "win32" else base_path


class ExecutableLocator:
    """
    Resolves how to launch the DPug server, trying candidates in a fixed order:

    1. The CLI script and native binary under the workspace root, then its parent.
    2. The bare `dpug` command on PATH.

    The workspace script is tagged with the `dart` interpreter, which the OS
    resolves on PATH at spawn time. That also covers "dart on PATH plus the
    workspace script", so there is no separate lookup for it: it could only
    ever return the script already returned by step 1.

    The first candidate that resolves wins. Lookup errors are logged at debug
    level and the locator moves on to the next candidate.
    """

    def __init__(
        self,
        workspace_root: Optional[Path],
        which: Callable[[str], Optional[str]] = shutil.which,
        cli_command: str = settings.CLI_COMMAND,
        interpreter: str = settings.DART_EXECUTABLE,
    ) -> None:
        self.workspace_root = Path(workspace_root) if workspace_root else None
        self.which = which
        self.cli_command = cli_command
        self.interpreter = interpreter

    def workspace_candidates(self) -> List[LaunchCandidate]:
        """The workspace-relative candidates, in priority order."""
        if self.workspace_root is None:
            return []
        candidates = []
        for base in (self.workspace_root, self.workspace_root / ".."):
            bin_dir = base / settings.CLI_BIN_DIR
            candidates.append(LaunchCandidate.script(bin_dir / settings.CLI_SCRIPT_NAME, self.interpreter))
            candidates.append(LaunchCandidate.direct(get_executable_path(bin_dir / settings.CLI_BINARY_NAME)))
        return candidates

    def _iter_candidates(self) -> Iterator[LaunchCandidate]:
        for candidate in self.workspace_candidates():
            if self._exists(Path(candidate.path)):
                log.info(f"Found dpug CLI at: {candidate.path}")
                yield candidate

        resolved = self._which(self.cli_command)
        if resolved:
            log.info(f"Found dpug CLI in PATH: {resolved}")
            yield LaunchCandidate(resolved)

    def locate(self) -> Optional[LaunchCandidate]:
        """
        Finds the first launchable candidate.

        :return: The candidate to launch, or None if nothing resolves.
        """
        for candidate in self._iter_candidates():
            return candidate
        log.warning("No dpug CLI executable could be found.")
        return None

    @staticmethod
    def _exists(path: Path) -> bool:
        try:
            return path.is_file()
        except OSError as e:
            log.debug(f"Could not stat candidate '{path}': {e}")
            return False

    def _which(self, command: str) -> Optional[str]:
        try:
            return self.which(command)
        except OSError as e:
            log.debug(f"PATH lookup for '{command}' failed: {e}")
            return None
