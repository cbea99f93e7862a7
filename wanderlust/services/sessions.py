"""
Client sessions - Per-browser view state (chat transcript and itinerary panel).
"""
import uuid
from datetime import datetime
from typing import Optional

from .api_client import BackendClient, get_backend_client
from .chat_controller import ChatController
from .panel_store import ItineraryPanelStore, state_path_for

CLIENT_COOKIE = "wanderlust_client"


class ClientSession:
    """View state for one browser, identified by its client cookie."""

    def __init__(self, client_id: str, client: BackendClient, panel: ItineraryPanelStore):
        self.client_id = client_id
        self.created_at = datetime.now()
        self.updated_at = datetime.now()
        self.panel = panel
        self.chat = ChatController(client, panel)

    def touch(self):
        self.updated_at = datetime.now()


# In-memory session storage; panel state survives restarts through its JSON file
class SessionStore:
    """In-memory store of client sessions."""

    def __init__(self, client: Optional[BackendClient] = None, persist: bool = True):
        self._sessions: dict[str, ClientSession] = {}
        self._client = client
        self.persist = persist

    @property
    def client(self) -> BackendClient:
        return self._client or get_backend_client()

    def create(self, client_id: Optional[str] = None) -> ClientSession:
        """Create a session, restoring the panel state saved for this client id."""
        client_id = client_id or str(uuid.uuid4())
        storage_path = state_path_for(client_id) if self.persist else None
        session = ClientSession(client_id, self.client, ItineraryPanelStore(storage_path))
        self._sessions[client_id] = session
        return session

    def get(self, client_id: Optional[str]) -> Optional[ClientSession]:
        if client_id is None:
            return None
        return self._sessions.get(client_id)

    def get_or_create(self, client_id: Optional[str]) -> ClientSession:
        session = self.get(client_id) or self.create(client_id)
        session.touch()
        return session


# Global session store
session_store = SessionStore()
