from dataclasses import dataclass
from typing import Awaitable, Callable

from ..captaindata import CaptainDataClient, UpstreamResponse
from . import companies, people, platform

ToolHandler = Callable[[CaptainDataClient, str, dict], Awaitable[UpstreamResponse]]

_PAGINATION = {
    "page": {
        "type": "integer",
        "minimum": 1,
        "default": 1,
        "description": "Page number for paginated results",
    },
    "page_size": {
        "type": "integer",
        "minimum": 1,
        "maximum": 100,
        "default": 25,
        "description": "Number of results per page",
    },
}


@dataclass(frozen=True)
class Tool:
    alias: str
    description: str
    parameters: dict
    handler: ToolHandler

    def definition(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.alias,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _object(properties: dict, required: tuple[str, ...] = ()) -> dict:
    schema = {
        "type": "object",
        "properties": properties,
        "additionalProperties": False,
    }
    if required:
        schema["required"] = list(required)
    return schema


TOOLS: dict[str, Tool] = {
    tool.alias: tool
    for tool in (
        Tool(
            "find_person",
            "Find a person's LinkedIn profile from their full name and, optionally, "
            "the company they work for.",
            _object(
                {
                    "full_name": {"type": "string", "description": "Person's full name"},
                    "company_name": {
                        "type": "string",
                        "description": "Company the person works for",
                    },
                },
                required=("full_name",),
            ),
            people.find_person,
        ),
        Tool(
            "search_people",
            "Search for people matching a query, e.g. job title, company or location. "
            "Useful for building prospect lists.",
            _object(
                {"query": {"type": "string", "description": "Search query"}, **_PAGINATION},
                required=("query",),
            ),
            people.search_people,
        ),
        Tool(
            "enrich_person",
            "Get detailed profile information for a person from their LinkedIn profile URL.",
            _object(
                {
                    "li_profile_url": {
                        "type": "string",
                        "description": "LinkedIn profile URL",
                    },
                    "full_enrich": {
                        "type": "boolean",
                        "description": "Include extended profile data",
                    },
                },
                required=("li_profile_url",),
            ),
            people.enrich_person,
        ),
        Tool(
            "find_company",
            "Find a company's LinkedIn page from its name.",
            _object(
                {"company_name": {"type": "string", "description": "Company name"}},
                required=("company_name",),
            ),
            companies.find_company,
        ),
        Tool(
            "search_companies",
            "Search for companies matching a query, e.g. industry, size or location.",
            _object(
                {"query": {"type": "string", "description": "Search query"}, **_PAGINATION},
                required=("query",),
            ),
            companies.search_companies,
        ),
        Tool(
            "enrich_company",
            "Get detailed company information from its LinkedIn company URL.",
            _object(
                {
                    "li_company_url": {
                        "type": "string",
                        "description": "LinkedIn company URL",
                    }
                },
                required=("li_company_url",),
            ),
            companies.enrich_company,
        ),
        Tool(
            "search_company_employees",
            "List the employees of a company identified by its Captain Data company uid.",
            _object(
                {
                    "company_uid": {
                        "type": "string",
                        "description": "Company uid returned by find_company or enrich_company",
                    },
                    **_PAGINATION,
                },
                required=("company_uid",),
            ),
            companies.search_company_employees,
        ),
        Tool(
            "get_quotas",
            "Get the remaining credits and quotas of the Captain Data workspace.",
            _object({}),
            platform.get_quotas,
        ),
    )
}


def get_tool(alias: str) -> Tool | None:
    return TOOLS.get(alias)


def list_definitions(full: bool = False) -> list[dict]:
    tools = list(TOOLS.values())
    if not full:
        tools = tools[:5]
    return [tool.definition() for tool in tools]
