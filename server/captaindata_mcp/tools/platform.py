from ..captaindata import CaptainDataClient, UpstreamResponse


async def get_quotas(
    client: CaptainDataClient, api_key: str, _params: dict
) -> UpstreamResponse:
    return await client.request("GET", "/v1/quotas", api_key)
