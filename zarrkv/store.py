from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Union

import fsspec

from zarrkv.common import BytesLike, to_thread
from zarrkv.path import join_path, normalize_path, path_to_prefix

logger = logging.getLogger(__name__)


class Store:
    """Key/value backend holding the documents and chunks of a hierarchy.

    A missing key reads as ``None``, never as an error.
    """

    async def get_async(self, key: str) -> Optional[BytesLike]:
        raise NotImplementedError

    async def set_async(self, key: str, value: BytesLike) -> None:
        raise NotImplementedError

    async def delete_async(self, key: str) -> None:
        raise NotImplementedError

    async def exists_async(self, key: str) -> bool:
        return await self.get_async(key) is not None

    async def list_prefix_async(self, prefix: str) -> List[str]:
        """All keys starting with `prefix`, sorted."""
        raise NotImplementedError

    def __truediv__(self, other: str) -> StorePath:
        return StorePath(self, other)


class MemoryStore(Store):
    def __init__(self, mapping: Optional[Dict[str, bytes]] = None):
        self._store_dict: Dict[str, bytes] = mapping if mapping is not None else {}

    async def get_async(self, key: str) -> Optional[BytesLike]:
        assert isinstance(key, str)
        return self._store_dict.get(key)

    async def set_async(self, key: str, value: BytesLike) -> None:
        assert isinstance(key, str)
        self._store_dict[key] = bytes(value)

    async def delete_async(self, key: str) -> None:
        self._store_dict.pop(key, None)

    async def exists_async(self, key: str) -> bool:
        return key in self._store_dict

    async def list_prefix_async(self, prefix: str) -> List[str]:
        return sorted(key for key in self._store_dict if key.startswith(prefix))

    def __str__(self) -> str:
        return f"memory://{id(self._store_dict)}"

    def __repr__(self) -> str:
        return f"MemoryStore({str(self)!r})"


class LocalStore(Store):
    root: Path
    auto_mkdir: bool

    def __init__(self, root: Union[Path, str], auto_mkdir: bool = True):
        if isinstance(root, str):
            root = Path(root)
        assert isinstance(root, Path)

        self.root = root
        self.auto_mkdir = auto_mkdir

    def _put_file(self, path: Path, value: BytesLike) -> None:
        if self.auto_mkdir:
            path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(value)

    def _list_prefix(self, prefix: str) -> List[str]:
        # only walk the deepest directory the prefix pins down
        base_dir = self.root / prefix.rsplit("/", 1)[0] if "/" in prefix else self.root
        if not base_dir.is_dir():
            return []
        keys = []
        for dirpath, _dirnames, filenames in os.walk(base_dir):
            for filename in filenames:
                key = (Path(dirpath) / filename).relative_to(self.root).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    async def get_async(self, key: str) -> Optional[BytesLike]:
        assert isinstance(key, str)
        path = self.root / key

        try:
            value = await to_thread(path.read_bytes)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

        return value

    async def set_async(self, key: str, value: BytesLike) -> None:
        assert isinstance(key, str)
        path = self.root / key
        await to_thread(self._put_file, path, value)

    async def delete_async(self, key: str) -> None:
        path = self.root / key
        await to_thread(path.unlink, True)

    async def exists_async(self, key: str) -> bool:
        path = self.root / key
        return await to_thread(path.is_file)

    async def list_prefix_async(self, prefix: str) -> List[str]:
        return await to_thread(self._list_prefix, prefix)

    def __str__(self) -> str:
        return f"file://{self.root}"

    def __repr__(self) -> str:
        return f"LocalStore({str(self)!r})"


class RemoteStore(Store):
    def __init__(self, url: str, **storage_options):
        assert isinstance(url, str)

        # instantiate file system
        fs, root = fsspec.core.url_to_fs(
            url, auto_mkdir=True, asynchronous=True, **storage_options
        )
        assert fs.__class__.async_impl, "FileSystem needs to support async operations."
        self.fs = fs
        self.root = root.rstrip("/")

    async def get_async(self, key: str) -> Optional[BytesLike]:
        assert isinstance(key, str)
        path = f"{self.root}/{key}"

        try:
            value = await self.fs._cat_file(path)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

        return value

    async def set_async(self, key: str, value: BytesLike) -> None:
        assert isinstance(key, str)
        path = f"{self.root}/{key}"
        await self.fs._pipe_file(path, bytes(value))

    async def delete_async(self, key: str) -> None:
        path = f"{self.root}/{key}"
        if await self.fs._exists(path):
            await self.fs._rm(path)

    async def exists_async(self, key: str) -> bool:
        path = f"{self.root}/{key}"
        return await self.fs._exists(path)

    async def list_prefix_async(self, prefix: str) -> List[str]:
        base = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        path = f"{self.root}/{base}".rstrip("/")
        try:
            items = await self.fs._find(path, withdirs=False, detail=False)
        except FileNotFoundError:
            return []
        keys = (item[len(self.root) + 1 :] for item in items)
        return sorted(key for key in keys if key.startswith(prefix))

    def __str__(self) -> str:
        protocol = self.fs.protocol
        if isinstance(protocol, tuple):
            protocol = protocol[-1]
        return f"{protocol}://{self.root}"

    def __repr__(self) -> str:
        return f"RemoteStore({str(self)!r})"


class StorePath:
    """A store plus the normalized path of one node inside it."""

    store: Store
    path: str

    def __init__(self, store: Store, path: Optional[str] = None):
        self.store = store
        self.path = normalize_path(path or "")

    @property
    def prefix(self) -> str:
        return path_to_prefix(self.path)

    def key(self, name: str) -> str:
        return self.prefix + name

    async def get_async(self, name: str) -> Optional[BytesLike]:
        return await self.store.get_async(self.key(name))

    async def set_async(self, name: str, value: BytesLike) -> None:
        logger.debug("Writing %s to %s", name, self)
        await self.store.set_async(self.key(name), value)

    async def delete_async(self, name: str) -> None:
        await self.store.delete_async(self.key(name))

    async def exists_async(self, name: str) -> bool:
        return await self.store.exists_async(self.key(name))

    async def list_async(self) -> List[str]:
        return await self.store.list_prefix_async(self.prefix)

    def __truediv__(self, other: str) -> StorePath:
        return self.__class__(self.store, join_path(self.path, other))

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, StorePath)
            and self.store is other.store
            and self.path == other.path
        )

    def __hash__(self) -> int:
        return hash((id(self.store), self.path))

    def __str__(self) -> str:
        root = str(self.store).rstrip("/")
        return f"{root}/{self.path}" if self.path else root

    def __repr__(self) -> str:
        return f"StorePath({self.store.__class__.__name__}, {repr(str(self))})"


StoreLike = Union[Store, StorePath, Path, str, None]


def make_store_path(store: StoreLike) -> StorePath:
    if isinstance(store, StorePath):
        return store
    elif isinstance(store, Store):
        return StorePath(store)
    elif isinstance(store, Path):
        return StorePath(LocalStore(store))
    elif isinstance(store, str):
        if "://" in store:
            return StorePath(RemoteStore(store))
        return StorePath(LocalStore(store))
    elif store is None:
        return StorePath(MemoryStore())
    raise TypeError(f"cannot use {store!r} as a store")
