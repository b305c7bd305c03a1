# vidstore Services
from vidstore.services.appwrite import AppwriteAPIError, AppwriteClient, get_appwrite_client
from vidstore.services.checkout import CheckoutService
from vidstore.services.credentials import CredentialsManager, get_credentials_manager
from vidstore.services.crypto import FieldCodec, get_codec
from vidstore.services.provisioning import Provisioner, SetupOrchestrator
from vidstore.services.session import Result, Session, SessionStore, get_session_store
from vidstore.services.session_cache import SessionCache

__all__ = [
    "AppwriteAPIError",
    "AppwriteClient",
    "CheckoutService",
    "CredentialsManager",
    "FieldCodec",
    "Provisioner",
    "Result",
    "Session",
    "SessionCache",
    "SessionStore",
    "SetupOrchestrator",
    "get_appwrite_client",
    "get_codec",
    "get_credentials_manager",
    "get_session_store",
]
