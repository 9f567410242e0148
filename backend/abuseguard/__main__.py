"""Run the API with uvicorn: ``python -m abuseguard``."""

import uvicorn

from abuseguard.settings import settings


def main() -> None:
	uvicorn.run(
		"abuseguard.main:app",
		host=settings.http_host,
		port=settings.http_port,
		log_config=None,
	)


if __name__ == "__main__":
	main()
