import base64
import os

from locust import HttpUser, task, between

# tokens are issued by the account service; export one per role before running
REQUESTER_TOKEN = os.getenv("WIGBANK_REQUESTER_TOKEN", "")
INSTITUTION_TOKEN = os.getenv("WIGBANK_INSTITUTION_TOKEN", "")

EVIDENCE = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4 load").decode()


class RequesterUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = {"Authorization": f"Bearer {REQUESTER_TOKEN}"}

    @task(1)
    def submit_request(self):
        self.client.post(
            "/api/requests/base64",
            json={"evidence": EVIDENCE, "note": "load test"},
            headers=self.headers,
        )

    @task(3)
    def read_notifications(self):
        self.client.get("/api/notifications/", headers=self.headers)


class InstitutionUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = {"Authorization": f"Bearer {INSTITUTION_TOKEN}"}

    @task(3)
    def browse_pending(self):
        self.client.get("/api/requests/", params={"status": 1}, headers=self.headers)

    @task(1)
    def list_wigs(self):
        self.client.get("/api/wigs/", params={"available": True}, headers=self.headers)
