from ..captaindata import CaptainDataClient, UpstreamResponse
from .params import query_params


async def find_person(client: CaptainDataClient, api_key: str, params: dict) -> UpstreamResponse:
    query = query_params(params, ("full_name", "company_name"))
    return await client.request("GET", "/v1/people/find", api_key, params=query)


async def search_people(
    client: CaptainDataClient, api_key: str, params: dict
) -> UpstreamResponse:
    query = query_params(params, ("query", "page", "page_size"))
    return await client.request("GET", "/v1/people/search", api_key, params=query)


async def enrich_person(
    client: CaptainDataClient, api_key: str, params: dict
) -> UpstreamResponse:
    query = query_params(params, ("li_profile_url", "full_enrich"))
    return await client.request("GET", "/v1/people/enrich", api_key, params=query)
