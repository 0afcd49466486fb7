from typing import List, Optional

from pydantic import ValidationError

from checkcx.core.constants import TABLE_CHECK_CONFIGS, TABLE_GROUP_INFO
from checkcx.core.logging import get_logger
from checkcx.db.supabase import get_supabase_admin
from checkcx.schemas.check import ProviderConfig
from checkcx.schemas.dashboard import GroupInfo
from checkcx.services.snapshot_store import ClientFactory


# PostgREST code for .single() matching no rows
NO_ROWS_CODE = "PGRST116"


class ConfigLoader:
    """Loads provider configs and group metadata from the telemetry store"""

    def __init__(self, client_factory: ClientFactory = get_supabase_admin):
        self._client_factory = client_factory
        self.logger = get_logger("config_loader")

    async def load(self, enabled_only: bool = True) -> List[ProviderConfig]:
        try:
            supabase = await self._client_factory()
            query = supabase.table(TABLE_CHECK_CONFIGS).select("*")
            if enabled_only:
                query = query.eq("enabled", True)
            response = await query.execute()
        except Exception as e:
            self.logger.error("Failed to load provider configs", error=str(e))
            return []

        configs = []
        for row in response.data or []:
            try:
                configs.append(ProviderConfig.from_row(row))
            except (ValidationError, KeyError) as e:
                self.logger.warning("Skipping invalid provider config", config_id=row.get("id"), error=str(e))

        self.logger.debug("Loaded provider configs", count=len(configs))
        return configs

    async def load_group_infos(self) -> List[GroupInfo]:
        try:
            supabase = await self._client_factory()
            response = await supabase.table(TABLE_GROUP_INFO).select("*").execute()
            return [GroupInfo(id=str(row["id"]), group_name=row["group_name"], website_url=row.get("website_url"))
                    for row in response.data or []]
        except Exception as e:
            self.logger.error("Failed to load group info", error=str(e))
            return []

    async def get_group_info(self, group_name: str) -> Optional[GroupInfo]:
        try:
            supabase = await self._client_factory()
            response = await supabase.table(TABLE_GROUP_INFO).select("*").eq("group_name", group_name).single().execute()
        except Exception as e:
            # A missing group is expected, not an error
            if getattr(e, "code", None) != NO_ROWS_CODE:
                self.logger.error("Failed to load group info", group_name=group_name, error=str(e))
            return None

        row = response.data
        if not row:
            return None
        return GroupInfo(id=str(row["id"]), group_name=row["group_name"], website_url=row.get("website_url"))
