"""Supabase connection settings.

Environment Variables:
- SUPABASE_URL: project URL
- SUPABASE_SERVICE_KEY: service role key (server side only)
- SUPABASE_CONVERSATIONS_TABLE: table holding serialized conversation state
  (default: blueprint_conversations)

Expected table:

    CREATE TABLE IF NOT EXISTS blueprint_conversations (
        blueprint_id TEXT PRIMARY KEY,
        state JSONB NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from dotenv import load_dotenv
from supabase import create_client

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class SupabaseSettings:
    url: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_URL"))
    service_key: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_SERVICE_KEY"))
    conversations_table: str = field(
        default_factory=lambda: os.getenv("SUPABASE_CONVERSATIONS_TABLE", "blueprint_conversations")
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.service_key)


supabase_settings = SupabaseSettings()

_client: Optional[Any] = None


def get_supabase_client() -> Any:
    """Return a cached Supabase client.

    Raises:
        RuntimeError: if SUPABASE_URL / SUPABASE_SERVICE_KEY are not set
    """
    global _client
    if _client is None:
        if not supabase_settings.is_configured:
            raise RuntimeError("Supabase is not configured (set SUPABASE_URL and SUPABASE_SERVICE_KEY)")
        _client = create_client(supabase_settings.url, supabase_settings.service_key)
        logger.info("Supabase client initialized")
    return _client
