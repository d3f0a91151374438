from __future__ import annotations

from typing import Optional, Union

import zarrkv.codecs  # noqa: F401
from zarrkv.array_v2 import (  # noqa: F401
    ArrayRuntimeConfiguration,
    ArrayV2,
    runtime_configuration,
)
from zarrkv.codecs import CodecPipeline, CodecSpec, register_codec  # noqa: F401
from zarrkv.dtype import (  # noqa: F401
    PrimitiveDType,
    StructuredDType,
    StructuredField,
    parse_dtype,
)
from zarrkv.errors import (  # noqa: F401
    CodecError,
    CodecFailureError,
    InvalidChunkCoordinateError,
    InvalidDTypeError,
    InvalidFillValueError,
    InvalidPathError,
    MetadataError,
    MissingFieldError,
    NodeNotFoundError,
    PathConflictError,
    UnexpectedFieldError,
    UnknownCodecError,
    ZarrKVError,
)
from zarrkv.group_v2 import GroupV2  # noqa: F401
from zarrkv.hierarchy import (  # noqa: F401
    create_array,
    create_array_async,
    delete_node,
    delete_node_async,
    ensure_group,
    ensure_group_async,
    get_attrs,
    get_attrs_async,
    list_children,
    list_children_async,
    set_attrs,
    set_attrs_async,
)
from zarrkv.indexing import ChunkGrid  # noqa: F401
from zarrkv.store import (  # noqa: F401
    LocalStore,
    MemoryStore,
    RemoteStore,
    Store,
    StoreLike,
    StorePath,
    make_store_path,
)
from zarrkv.sync import sync as _sync


async def open_node_async(
    store: StoreLike,
    path: str = "",
    runtime_configuration_: Optional[ArrayRuntimeConfiguration] = None,
) -> Union[ArrayV2, GroupV2]:
    store_path = make_store_path(store) / path
    return await GroupV2.open_or_array(
        store_path, runtime_configuration=runtime_configuration_
    )


def open_node(
    store: StoreLike,
    path: str = "",
    runtime_configuration_: Optional[ArrayRuntimeConfiguration] = None,
) -> Union[ArrayV2, GroupV2]:
    return _sync(open_node_async(store, path, runtime_configuration_))
