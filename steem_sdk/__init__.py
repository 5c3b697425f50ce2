"""
steem-sdk: Client SDK for the Steem ledger network.

Two cores:
- signed calls: authenticated JSON-RPC reads that prove account
  ownership without sending a key
- transactions: reference block binding, multi-key signing and
  synchronous broadcast

Plus concurrent block range retrieval with bounded retry.
"""

__version__ = "0.1.0"

from steem_sdk.broadcast import Broadcast, BroadcastSubmitter
from steem_sdk.client import Client
from steem_sdk.config import SdkConfig
from steem_sdk.errors import (
    BadSignatureError,
    BroadcastErrorCategory,
    BroadcastRejectedError,
    EmptyOperationListError,
    ErrorCode,
    ErrorKind,
    FetchFailedError,
    InvalidKeyFormatError,
    InvalidRangeError,
    InvalidRoleError,
    KeyNotFoundError,
    MalformedEnvelopeError,
    NetworkError,
    NoKeysProvidedError,
    PropertiesFetchFailedError,
    RpcError,
    SignatureExpiredError,
    SigningError,
    SteemError,
    UnsupportedTransportError,
)
from steem_sdk.fetcher import ConcurrentBlockFetcher, RetryMode, WrapBlock
from steem_sdk.jsonrpc_client import JsonRpcClient
from steem_sdk.keys import KeyRole, KeyStore, PrivateKey, PublicKey
from steem_sdk.operations import (
    AccountWitnessVoteOperation,
    Authority,
    CommentOperation,
    CustomJsonOperation,
    DeleteCommentOperation,
    Operation,
    TransferOperation,
    TransferToVestingOperation,
    VoteOperation,
)
from steem_sdk.signed_call import (
    DOMAIN_SEPARATOR,
    SIGNATURE_VALIDITY_SECONDS,
    AuthorityVerifier,
    SignedEnvelope,
    build_message,
    sign_request,
    validate_request,
)
from steem_sdk.transaction import (
    STEEM_CHAIN_ID,
    ChainProperties,
    RefBlockPolicy,
    SignedTransaction,
    TransactionAssembler,
    TransactionSigner,
    UnsignedTransaction,
)

__all__ = [
    "DOMAIN_SEPARATOR",
    "SIGNATURE_VALIDITY_SECONDS",
    "STEEM_CHAIN_ID",
    "AccountWitnessVoteOperation",
    "Authority",
    "AuthorityVerifier",
    "BadSignatureError",
    "Broadcast",
    "BroadcastErrorCategory",
    "BroadcastRejectedError",
    "BroadcastSubmitter",
    "ChainProperties",
    "Client",
    "CommentOperation",
    "ConcurrentBlockFetcher",
    "CustomJsonOperation",
    "DeleteCommentOperation",
    "EmptyOperationListError",
    "ErrorCode",
    "ErrorKind",
    "FetchFailedError",
    "InvalidKeyFormatError",
    "InvalidRangeError",
    "InvalidRoleError",
    "JsonRpcClient",
    "KeyNotFoundError",
    "KeyRole",
    "KeyStore",
    "MalformedEnvelopeError",
    "NetworkError",
    "NoKeysProvidedError",
    "Operation",
    "PrivateKey",
    "PropertiesFetchFailedError",
    "PublicKey",
    "RefBlockPolicy",
    "RetryMode",
    "RpcError",
    "SdkConfig",
    "SignatureExpiredError",
    "SignedEnvelope",
    "SignedTransaction",
    "SigningError",
    "SteemError",
    "TransactionAssembler",
    "TransactionSigner",
    "TransferOperation",
    "TransferToVestingOperation",
    "UnsignedTransaction",
    "UnsupportedTransportError",
    "VoteOperation",
    "WrapBlock",
    "build_message",
    "sign_request",
    "validate_request",
]
