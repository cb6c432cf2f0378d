"""Asyncio facade over ``MoleculeStore``.

Each call runs the blocking store operation in the default thread pool, so
an event loop serving uploads is never blocked by file copies, the external
transformation programs, compression or hashing.  Calls are independent
tasks; nothing here serializes them.  Cancelling a pending ``save`` stops
its worker before anything is published.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import zipfile
from collections.abc import Callable

from molstore.core.errors import MoleculeStoreError
from molstore.core.molecule_store import MoleculeStore
from molstore.models.molecule import MoleculeSave, MoleculeSaveInfo, UploadedFile

logger = logging.getLogger(__name__)


class AsyncMoleculeStore:
    """Awaitable wrapper exposing the same operations as ``MoleculeStore``."""

    def __init__(self, store: MoleculeStore) -> None:
        self._store = store

    @property
    def store(self) -> MoleculeStore:
        return self._store

    async def save(
        self,
        itp_files: list[UploadedFile],
        pdb_file: UploadedFile,
        top_file: UploadedFile,
        force_field: str,
    ) -> MoleculeSave:
        """Save on a worker thread.

        Cancelling the awaiting task sets the save's cancel event, which
        kills a running CONECT program, and waits for the worker to stop.
        A save that had already been published when the cancel arrived is
        removed again, since its caller never receives the identifier.
        """
        cancel = threading.Event()
        worker = asyncio.ensure_future(
            asyncio.to_thread(
                self._store.save,
                itp_files,
                pdb_file,
                top_file,
                force_field,
                cancel=cancel,
            )
        )
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            cancel.set()
            await self._discard(worker)
            raise

    async def _discard(self, worker: asyncio.Future) -> None:
        try:
            save = await worker
        except MoleculeStoreError as exc:
            logger.debug("Cancelled save stopped: %s", exc)
            return
        logger.info("Removing molecule #%s saved after cancellation", save.id)
        await asyncio.to_thread(self._store.remove, save.id)

    async def get(self, file_id: str) -> tuple[zipfile.ZipFile, MoleculeSaveInfo] | None:
        return await asyncio.to_thread(self._store.get, file_id)

    async def get_info(self, file_id: str) -> MoleculeSaveInfo | None:
        return await asyncio.to_thread(self._store.get_info, file_id)

    async def list(
        self, predicate: Callable[[str], bool] | None = None
    ) -> list[MoleculeSaveInfo]:
        return await asyncio.to_thread(self._store.list, predicate)

    async def exists(self, file_id: str) -> bool:
        return await asyncio.to_thread(self._store.exists, file_id)

    async def hash(self, file_id: str) -> str | None:
        return await asyncio.to_thread(self._store.hash, file_id)

    async def remove(self, file_id: str) -> None:
        await asyncio.to_thread(self._store.remove, file_id)

    async def remove_all(self) -> None:
        await asyncio.to_thread(self._store.remove_all)
