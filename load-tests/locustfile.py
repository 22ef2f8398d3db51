import os
import uuid

from locust import HttpUser, task, between

API_KEY = os.getenv("CAPTAINDATA_API_KEY", "")
COMPANY_URL = os.getenv("LOAD_TEST_COMPANY_URL", "https://www.linkedin.com/company/captaindata")


def _payload(name: str, arguments: dict) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": str(uuid.uuid4()),
        "method": "tools/call",
        "params": {"name": name, "arguments": arguments},
    }


class CaptainDataUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self) -> None:
        response = self.client.post("/auth", json={"api_key": API_KEY}, name="auth")
        token = response.json().get("session_token", "")
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json, text/event-stream",
        }

    @task(3)
    def get_quotas(self):
        self.client.post(
            "/tools/get_quotas", json={}, headers=self.headers, name="get_quotas"
        )

    @task(2)
    def enrich_company_over_mcp(self):
        self.client.post(
            "/mcp/",
            json=_payload("enrich_company", {"li_company_url": COMPANY_URL}),
            headers=self.headers,
            name="mcp_enrich_company",
        )

    @task(1)
    def health(self):
        self.client.get("/health", name="health")
