"""Demo server for idempotent newsletter publishing.

Run with: python demo_app.py
The database defaults to a local SQLite file; set PUBLISH_DATABASE_URL to
point at PostgreSQL instead.

Then publish the same issue twice with one key:

    curl -i -X POST http://localhost:8000/admin/newsletters \
        -H "X-User-Id: admin" \
        -d title=Hello -d text_content=Hi -d html_content="<p>Hi</p>" \
        -d idempotency_key=demo-1
"""

import uvicorn

from idempotent_publish.adapters.asgi import create_app
from idempotent_publish.config import PublishConfig
from idempotent_publish.observability.logging import configure_logging
from idempotent_publish.storage.database import create_engine

configure_logging(level="INFO", json_output=False)

config = PublishConfig.from_env()
app = create_app(create_engine(config), config, create_tables=True)


if __name__ == "__main__":
    print("=" * 60)
    print("Newsletter Publishing Demo Server")
    print("=" * 60)
    print(f"\nDatabase: {config.database_url}")
    print("Starting server at http://localhost:8000")
    print("\nPress Ctrl+C to stop")
    print("=" * 60)
    print()

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
