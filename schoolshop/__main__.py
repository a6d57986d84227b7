# schoolshop/__main__.py
import argparse
import logging

import uvicorn

from .config import load_settings
from .pg_store import PostgresStore


def main(argv=None):
    parser = argparse.ArgumentParser(prog="schoolshop")
    sub = parser.add_subparsers(dest="command", required=True)
    serve = sub.add_parser("serve", help="run the orders API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    sub.add_parser("init-db", help="create tables in DATABASE_URL")
    args = parser.parse_args(argv)

    settings = load_settings()
    logging.basicConfig(level=settings.log_level)

    if args.command == "init-db":
        if not settings.database_url:
            parser.error("DATABASE_URL is not set")
        store = PostgresStore(settings.database_url, settings.pool_min, settings.pool_max)
        store.open()
        try:
            store.init_schema()
        finally:
            store.close()
        logging.getLogger(__name__).info("schema created")
    else:
        uvicorn.run("schoolshop.app:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
