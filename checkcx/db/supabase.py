from typing import Optional
from supabase import acreate_client, AsyncClient
from supabase.lib.client_options import AsyncClientOptions

from checkcx.core.config import settings


_admin_client: Optional[AsyncClient] = None


async def get_supabase_admin() -> AsyncClient:
    """Get the shared Supabase client with service key (bypasses RLS)"""
    global _admin_client

    if _admin_client is None:
        if not settings.supabase_url or not settings.supabase_service_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required")

        options = AsyncClientOptions(
            schema=settings.db_schema,
            auto_refresh_token=False,
            persist_session=False,
        )
        _admin_client = await acreate_client(
            settings.supabase_url,
            settings.supabase_service_key,
            options=options
        )

    return _admin_client
