from urllib.parse import quote

from ..captaindata import CaptainDataClient, UpstreamResponse
from ..errors import MISSING_INPUT, MCPError
from .params import query_params


async def find_company(
    client: CaptainDataClient, api_key: str, params: dict
) -> UpstreamResponse:
    query = query_params(params, ("company_name",))
    return await client.request("GET", "/v1/companies/find", api_key, params=query)


async def search_companies(
    client: CaptainDataClient, api_key: str, params: dict
) -> UpstreamResponse:
    query = query_params(params, ("query", "page", "page_size"))
    return await client.request("GET", "/v1/companies/search", api_key, params=query)


async def enrich_company(
    client: CaptainDataClient, api_key: str, params: dict
) -> UpstreamResponse:
    query = query_params(params, ("li_company_url",))
    return await client.request("GET", "/v1/companies/enrich", api_key, params=query)


async def search_company_employees(
    client: CaptainDataClient, api_key: str, params: dict
) -> UpstreamResponse:
    company_uid = params.get("company_uid")
    if not company_uid:
        raise MCPError(MISSING_INPUT, "Must provide company_uid", status=400)
    path = f"/v1/companies/{quote(str(company_uid), safe='')}/employees"
    query = query_params(params, ("page", "page_size"))
    return await client.request("GET", path, api_key, params=query)
