"""Outbound method descriptors.

An ApiMethod names a remote method and carries its parameters. Parameters
that are None are left out of the request. Any InputFile among the
parameters turns the request into a multipart upload.
"""
import os
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Union

JSON_CONTENT_TYPE = "application/json"
MULTIPART_CONTENT_TYPE = "multipart/form-data"


@dataclass
class InputFile:
    """A local file to upload as part of a request.

    Attributes:
        name: File name reported to the remote service
        data: Raw bytes or a binary file object
    """
    name: str
    data: Union[bytes, BinaryIO]

    @classmethod
    def from_path(cls, path: str) -> "InputFile":
        with open(path, "rb") as f:
            return cls(name=os.path.basename(path), data=f.read())


@dataclass
class ApiMethod:
    """A single call to the remote service.

    Attributes:
        name: Remote method name, e.g. "sendMessage"
        params: Method parameters; None values are dropped
    """
    name: str
    params: Dict[str, Any] = field(default_factory=dict)

    def payload(self) -> Dict[str, Any]:
        return {k: v for k, v in self.params.items() if v is not None}

    def files(self) -> Dict[str, InputFile]:
        return {k: v for k, v in self.payload().items() if isinstance(v, InputFile)}

    @property
    def content_type(self) -> str:
        return MULTIPART_CONTENT_TYPE if self.files() else JSON_CONTENT_TYPE


def get_me() -> ApiMethod:
    return ApiMethod("getMe")


def get_updates(
    offset: int = 0,
    limit: Optional[int] = None,
    timeout: Optional[int] = None,
    allowed_updates: Optional[Iterable[str]] = None,
) -> ApiMethod:
    return ApiMethod(
        "getUpdates",
        {
            "offset": offset,
            "limit": limit,
            "timeout": timeout,
            "allowed_updates": list(allowed_updates) if allowed_updates is not None else None,
        },
    )


def set_webhook(
    url: str,
    certificate: Optional[InputFile] = None,
    ip_address: Optional[str] = None,
    max_connections: Optional[int] = None,
    allowed_updates: Optional[Iterable[str]] = None,
    drop_pending_updates: Optional[bool] = None,
    secret_token: Optional[str] = None,
) -> ApiMethod:
    return ApiMethod(
        "setWebhook",
        {
            "url": url,
            "certificate": certificate,
            "ip_address": ip_address,
            "max_connections": max_connections,
            "allowed_updates": list(allowed_updates) if allowed_updates is not None else None,
            "drop_pending_updates": drop_pending_updates,
            "secret_token": secret_token,
        },
    )


def delete_webhook(drop_pending_updates: Optional[bool] = None) -> ApiMethod:
    return ApiMethod("deleteWebhook", {"drop_pending_updates": drop_pending_updates})


def get_my_commands(
    scope: Optional[Dict[str, Any]] = None, language_code: Optional[str] = None
) -> ApiMethod:
    return ApiMethod("getMyCommands", {"scope": scope, "language_code": language_code or None})


def set_my_commands(
    commands: List[Dict[str, str]],
    scope: Optional[Dict[str, Any]] = None,
    language_code: Optional[str] = None,
) -> ApiMethod:
    return ApiMethod(
        "setMyCommands",
        {"commands": commands, "scope": scope, "language_code": language_code or None},
    )


def send_message(chat_id: Union[int, str], text: str, **extra: Any) -> ApiMethod:
    return ApiMethod("sendMessage", {"chat_id": chat_id, "text": text, **extra})


def send_document(
    chat_id: Union[int, str],
    document: Union[InputFile, str],
    caption: Optional[str] = None,
    **extra: Any,
) -> ApiMethod:
    """Send a document; a str is a file id or URL, an InputFile is uploaded."""
    return ApiMethod(
        "sendDocument",
        {"chat_id": chat_id, "document": document, "caption": caption, **extra},
    )


def close() -> ApiMethod:
    return ApiMethod("close")
