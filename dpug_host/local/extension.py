import logging
import threading
from pathlib import Path
from typing import Optional
from dpug_host import settings
from dpug_host.local import client
from dpug_host.local.config import WorkspaceSettings
from dpug_host.local.supervisor import ServerSupervisor

log = logging.getLogger(__name__)

DPUG_SUFFIX = ".dpug"
DART_SUFFIX = ".dart"


class Extension:
    """
    The top-level lifecycle controller.

    It constructs the single ServerSupervisor for its workspace, starts the
    server on activation and stops it on deactivation. The document commands
    (format, convert to/from Dart) make sure the server is running before
    calling it, and report failures through the log.
    """

    def __init__(self, workspace_root: Optional[Path] = None, supervisor: Optional[ServerSupervisor] = None) -> None:
        self.config = WorkspaceSettings(workspace_root)
        self.supervisor = supervisor or ServerSupervisor(self.config)
        self._startup_thread: Optional[threading.Thread] = None

    #* --- Lifecycle ---
    def activate(self) -> None:
        """Starts the server in the background when auto-start is enabled."""
        if self.config.get("server.autoStart", settings.SERVER_AUTO_START):
            self._startup_thread = threading.Thread(
                target=self.supervisor.ensure_running, daemon=True, name="DpugServerStartup"
            )
            self._startup_thread.start()
        log.info("DPug extension activated")

    def deactivate(self) -> None:
        """Cancels an in-flight startup and stops the server (subject to auto-stop)."""
        self.supervisor.cancel()
        if self._startup_thread is not None:
            self._startup_thread.join(timeout=self.supervisor.grace_period + self.supervisor.probe_timeout + 1)
        self.supervisor.stop(force=False)
        log.info("DPug extension deactivated")

    #* --- Document commands ---
    def _server_endpoint(self):
        if not self.supervisor.ensure_running():
            log.error("DPug server is not available. See the log for details.")
            return None
        return self.supervisor.endpoint()

    def format_document(self, path: Path) -> bool:
        """Formats a DPug file in place."""
        path = Path(path)
        if path.suffix != DPUG_SUFFIX:
            log.error(f"No DPug document to format: '{path}'")
            return False

        endpoint = self._server_endpoint()
        if endpoint is None:
            return False
        try:
            formatted = client.format_dpug(endpoint, path.read_text(encoding="utf-8"))
            path.write_text(formatted, encoding="utf-8")
        except client.ConversionError as e:
            log.error(f"Formatting failed: {e}")
            return False
        except OSError as e:
            log.error(f"Formatting failed for '{path}': {e}")
            return False
        log.info("Document formatted successfully")
        return True

    def convert_to_dart(self, path: Path) -> Optional[Path]:
        """Converts a DPug file to a sibling Dart file and returns its path."""
        return self._convert(Path(path), DPUG_SUFFIX, DART_SUFFIX, client.dpug_to_dart, "DPug to Dart")

    def convert_from_dart(self, path: Path) -> Optional[Path]:
        """Converts a Dart file to a sibling DPug file and returns its path."""
        return self._convert(Path(path), DART_SUFFIX, DPUG_SUFFIX, client.dart_to_dpug, "Dart to DPug")

    def _convert(self, path: Path, source_suffix: str, target_suffix: str, convert, label: str) -> Optional[Path]:
        if path.suffix != source_suffix:
            log.error(f"No {source_suffix} document to convert: '{path}'")
            return None

        endpoint = self._server_endpoint()
        if endpoint is None:
            return None
        target = path.with_suffix(target_suffix)
        try:
            converted = convert(endpoint, path.read_text(encoding="utf-8"))
            target.write_text(converted, encoding="utf-8")
        except client.ConversionError as e:
            log.error(f"Conversion failed: {e}")
            return None
        except OSError as e:
            log.error(f"Conversion failed for '{path}': {e}")
            return None
        log.info(f"Converted {label} successfully: {target}")
        return target

    def on_document_saved(self, path: Path) -> bool:
        """Formats a saved DPug document when format-on-save is enabled."""
        path = Path(path)
        if path.suffix != DPUG_SUFFIX:
            return False
        if not self.config.get("formatting.formatOnSave", settings.FORMAT_ON_SAVE):
            return False
        return self.format_document(path)
