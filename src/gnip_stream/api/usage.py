"""
Usage Client
============

Reads account usage statistics.
"""

from typing import Optional

from gnip_stream.api.base import ApiClient


class UsageClient(ApiClient):
    """Usage API client."""

    async def get(
        self,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        bucket: Optional[str] = None,
    ) -> dict:
        """
        Fetch usage for a time range.

        Args:
            from_date: Start, as YYYYmmddHHMM
            to_date: End, as YYYYmmddHHMM
            bucket: "day" or "month"
        """
        params = {
            "fromDate": from_date,
            "toDate": to_date,
            "bucket": bucket,
        }
        params = {key: value for key, value in params.items() if value is not None}
        return await self._request("GET", params=params) or {}
