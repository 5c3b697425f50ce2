"""
Steem operations as a closed set of immutable variants.

Each operation is a frozen dataclass with:
    - ``op_name``: condenser API name (e.g. "vote").
    - ``op_id``: position in the steemd operation variant (wire tag).
    - ``schema``: ordered (field, FieldType) pairs; defines both the
      binary layout and the JSON field order.
    - ``required_authority``: which key role must sign it.

New operation kinds are added by writing a new dataclass and listing it
in ``OPERATION_TYPES``. Nothing outside this module needs to change.

JSON form (condenser_api): ``[op_name, {field: value, ...}]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar, Union

from steem_sdk.serializer import Asset, FieldType

# Vote weight bounds (basis points; 10000 == 100%).
MAX_VOTE_WEIGHT = 10000

Schema = tuple[tuple[str, FieldType], ...]


class Authority(StrEnum):
    """Authority level an operation requires."""

    OWNER = "owner"
    ACTIVE = "active"
    POSTING = "posting"


def _require(value: str, name: str) -> None:
    if not value:
        raise ValueError(f"{name} must be non-empty")


def _check_asset(value: str, name: str) -> None:
    try:
        Asset.parse(value)
    except ValueError as e:
        raise ValueError(f"{name}: {e}") from e


# =========================================================================
# Variants
# =========================================================================


@dataclass(frozen=True)
class VoteOperation:
    voter: str
    author: str
    permlink: str
    weight: int

    op_name: ClassVar[str] = "vote"
    op_id: ClassVar[int] = 0
    schema: ClassVar[Schema] = (
        ("voter", FieldType.STRING),
        ("author", FieldType.STRING),
        ("permlink", FieldType.STRING),
        ("weight", FieldType.INT16),
    )

    def __post_init__(self) -> None:
        _require(self.voter, "voter")
        _require(self.author, "author")
        if not -MAX_VOTE_WEIGHT <= self.weight <= MAX_VOTE_WEIGHT:
            raise ValueError(
                f"weight must be within [-{MAX_VOTE_WEIGHT}, {MAX_VOTE_WEIGHT}], got {self.weight}"
            )

    @property
    def required_authority(self) -> Authority:
        return Authority.POSTING


@dataclass(frozen=True)
class CommentOperation:
    parent_author: str
    parent_permlink: str
    author: str
    permlink: str
    title: str
    body: str
    json_metadata: str = ""

    op_name: ClassVar[str] = "comment"
    op_id: ClassVar[int] = 1
    schema: ClassVar[Schema] = (
        ("parent_author", FieldType.STRING),
        ("parent_permlink", FieldType.STRING),
        ("author", FieldType.STRING),
        ("permlink", FieldType.STRING),
        ("title", FieldType.STRING),
        ("body", FieldType.STRING),
        ("json_metadata", FieldType.STRING),
    )

    def __post_init__(self) -> None:
        _require(self.author, "author")
        _require(self.permlink, "permlink")
        _require(self.parent_permlink, "parent_permlink")

    @property
    def required_authority(self) -> Authority:
        return Authority.POSTING


@dataclass(frozen=True)
class TransferOperation:
    from_account: str
    to: str
    amount: str
    memo: str = ""

    op_name: ClassVar[str] = "transfer"
    op_id: ClassVar[int] = 2
    schema: ClassVar[Schema] = (
        ("from_account", FieldType.STRING),
        ("to", FieldType.STRING),
        ("amount", FieldType.ASSET),
        ("memo", FieldType.STRING),
    )

    def __post_init__(self) -> None:
        _require(self.from_account, "from")
        _require(self.to, "to")
        _check_asset(self.amount, "amount")

    @property
    def required_authority(self) -> Authority:
        return Authority.ACTIVE


@dataclass(frozen=True)
class TransferToVestingOperation:
    from_account: str
    to: str
    amount: str

    op_name: ClassVar[str] = "transfer_to_vesting"
    op_id: ClassVar[int] = 3
    schema: ClassVar[Schema] = (
        ("from_account", FieldType.STRING),
        ("to", FieldType.STRING),
        ("amount", FieldType.ASSET),
    )

    def __post_init__(self) -> None:
        _require(self.from_account, "from")
        _check_asset(self.amount, "amount")

    @property
    def required_authority(self) -> Authority:
        return Authority.ACTIVE


@dataclass(frozen=True)
class AccountWitnessVoteOperation:
    account: str
    witness: str
    approve: bool = True

    op_name: ClassVar[str] = "account_witness_vote"
    op_id: ClassVar[int] = 12
    schema: ClassVar[Schema] = (
        ("account", FieldType.STRING),
        ("witness", FieldType.STRING),
        ("approve", FieldType.BOOL),
    )

    def __post_init__(self) -> None:
        _require(self.account, "account")
        _require(self.witness, "witness")

    @property
    def required_authority(self) -> Authority:
        return Authority.ACTIVE


@dataclass(frozen=True)
class DeleteCommentOperation:
    author: str
    permlink: str

    op_name: ClassVar[str] = "delete_comment"
    op_id: ClassVar[int] = 17
    schema: ClassVar[Schema] = (
        ("author", FieldType.STRING),
        ("permlink", FieldType.STRING),
    )

    def __post_init__(self) -> None:
        _require(self.author, "author")
        _require(self.permlink, "permlink")

    @property
    def required_authority(self) -> Authority:
        return Authority.POSTING


@dataclass(frozen=True)
class CustomJsonOperation:
    """custom_json. Auth lists are flat_sets: sorted and de-duplicated."""

    required_auths: tuple[str, ...]
    required_posting_auths: tuple[str, ...]
    id: str
    json: str

    op_name: ClassVar[str] = "custom_json"
    op_id: ClassVar[int] = 18
    schema: ClassVar[Schema] = (
        ("required_auths", FieldType.STRING_SET),
        ("required_posting_auths", FieldType.STRING_SET),
        ("id", FieldType.STRING),
        ("json", FieldType.STRING),
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "required_auths", tuple(sorted(set(self.required_auths))))
        object.__setattr__(
            self, "required_posting_auths", tuple(sorted(set(self.required_posting_auths)))
        )
        if not self.required_auths and not self.required_posting_auths:
            raise ValueError("custom_json needs at least one required auth")
        _require(self.id, "id")

    @property
    def required_authority(self) -> Authority:
        return Authority.ACTIVE if self.required_auths else Authority.POSTING


Operation = Union[
    VoteOperation,
    CommentOperation,
    TransferOperation,
    TransferToVestingOperation,
    AccountWitnessVoteOperation,
    DeleteCommentOperation,
    CustomJsonOperation,
]

OPERATION_TYPES: dict[str, type[Any]] = {
    cls.op_name: cls
    for cls in (
        VoteOperation,
        CommentOperation,
        TransferOperation,
        TransferToVestingOperation,
        AccountWitnessVoteOperation,
        DeleteCommentOperation,
        CustomJsonOperation,
    )
}

# Python field names that differ from the wire names.
_JSON_NAMES = {"from_account": "from"}
_FIELD_NAMES = {v: k for k, v in _JSON_NAMES.items()}


# =========================================================================
# JSON conversion
# =========================================================================


def operation_to_json(operation: Operation) -> list[Any]:
    """Condenser JSON form: ``[op_name, {...}]`` in schema field order."""
    body: dict[str, Any] = {}
    for name, field_type in operation.schema:
        value = getattr(operation, name)
        if field_type == FieldType.STRING_SET:
            value = list(value)
        body[_JSON_NAMES.get(name, name)] = value
    return [operation.op_name, body]


def operation_from_json(data: list[Any] | tuple[Any, ...]) -> Operation:
    """Parse ``[op_name, {...}]`` into an operation.

    Raises:
        ValueError: Unknown operation name or malformed shape.
    """
    if not isinstance(data, (list, tuple)) or len(data) != 2:
        raise ValueError("operation must be a two-item [name, body] list")
    name, body = data
    cls = OPERATION_TYPES.get(name)
    if cls is None:
        raise ValueError(f"unsupported operation: {name!r}")
    if not isinstance(body, dict):
        raise ValueError(f"{name} body must be an object")
    kwargs: dict[str, Any] = {}
    for key, value in body.items():
        field_name = _FIELD_NAMES.get(key, key)
        if isinstance(value, list):
            value = tuple(value)
        kwargs[field_name] = value
    try:
        op: Operation = cls(**kwargs)
    except TypeError as e:
        raise ValueError(f"{name}: {e}") from e
    return op


def highest_authority(operations: list[Operation] | tuple[Operation, ...]) -> Authority:
    """The strongest authority any of the operations requires."""
    ranks = {Authority.POSTING: 0, Authority.ACTIVE: 1, Authority.OWNER: 2}
    return max((op.required_authority for op in operations), key=ranks.__getitem__)
