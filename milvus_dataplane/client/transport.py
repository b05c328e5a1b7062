import abc
from enum import Enum
from typing import Any, Dict


class RequestKind(Enum):
    DESCRIBE_COLLECTION = "describe_collection"
    INSERT = "insert"
    UPSERT = "upsert"
    DELETE = "delete"
    QUERY = "query"
    SEARCH = "search"


class Transport(abc.ABC):
    """The RPC collaborator every network call goes through.

    Implementations own channels, credentials, timeouts and retries. ``execute``
    is expected to be safe to call again with identical arguments.

    Responses by kind:
        DESCRIBE_COLLECTION: the collection schema as a dict
        INSERT, UPSERT, DELETE: ``MutationResultData``
        QUERY: ``QueryResultData``
        SEARCH: ``SearchResultData``
    """

    @abc.abstractmethod
    def execute(self, kind: RequestKind, request: Dict[str, Any]) -> Any:
        raise NotImplementedError
