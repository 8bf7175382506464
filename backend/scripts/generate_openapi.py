"""Print the OpenAPI schema of the webhook API as JSON."""

import json

from grant_webhooks.main import app

if __name__ == "__main__":
    print(json.dumps(app.openapi(), indent=2))
