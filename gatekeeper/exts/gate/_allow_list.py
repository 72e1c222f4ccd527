import asyncio
import json
from pathlib import Path

from gatekeeper.errors import StoreIOError
from gatekeeper.log import get_logger

log = get_logger(__name__)


class AllowList:
    """
    The set of verified user identities, backed by a JSON array on disk.

    The file is read once by `load` and rewritten in full on every `add`. The in-memory set is
    always updated before the file is written, so a failed write leaves the identity verified
    for the rest of the process but not on disk.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        # A dict keeps insertion order, so the file lists identities in the order they verified.
        self._identities: dict[str, None] = {}
        self._write_lock = asyncio.Lock()

    def __contains__(self, identity: object) -> bool:
        return str(identity) in self._identities

    def __len__(self) -> int:
        return len(self._identities)

    def load(self) -> None:
        """
        Populate the in-memory set from the file, creating an empty file if there isn't one.

        Read failures are logged and leave the set empty so the bot can still start.
        """
        if not self.path.exists():
            log.info(f"Creating allow-list file at {self.path}")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text("[]", encoding="utf-8")
            except OSError as e:
                log.warning(f"Could not create allow-list file {self.path}: {e}")
            self._identities = {}
            return

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning(f"Could not read allow-list file {self.path}, starting with nobody verified: {e}")
            self._identities = {}
            return

        if not isinstance(data, list):
            log.warning(f"Allow-list file {self.path} does not contain a JSON array, starting with nobody verified.")
            self._identities = {}
            return

        self._identities = dict.fromkeys(str(identity) for identity in data)
        log.info(f"Loaded {len(self._identities)} verified identities from {self.path}")

    async def add(self, identity: str) -> None:
        """
        Mark `identity` as verified and persist the whole set.

        Adding an identity that is already present does nothing. Raise `StoreIOError` if the file
        can't be written; the identity stays verified in memory regardless.
        """
        identity = str(identity)
        async with self._write_lock:
            if identity in self._identities:
                log.trace(f"{identity} is already on the allow-list.")
                return

            self._identities[identity] = None
            log.debug(f"Added {identity} to the allow-list, writing {len(self._identities)} entries.")

            try:
                self.path.write_text(json.dumps(list(self._identities), indent=2), encoding="utf-8")
            except OSError as e:
                raise StoreIOError(f"Could not write allow-list file {self.path}: {e}") from e
