import asyncio
import sys

from pydantic import ValidationError

from flash_sale_loadgen.config.logger import logger, setup_logging
from flash_sale_loadgen.config.settings import Settings
from flash_sale_loadgen.core.checks import RunSummary
from flash_sale_loadgen.core.orchestrator import RunOrchestrator
from flash_sale_loadgen.http_client.client import OrderServiceClient
from flash_sale_loadgen.reporter.json_writer import write_summary
from flash_sale_loadgen.reporter.text_renderer import render_text


async def run(settings: Settings, transport=None) -> RunSummary:
    async with OrderServiceClient(settings, transport=transport) as client:
        orchestrator = RunOrchestrator(settings, client)
        return await orchestrator.run()


def main() -> int:
    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 2

    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info(
        "Starting flash sale load test",
        base_url=settings.BASE_URL,
        vus=settings.VUS,
        duration_s=settings.DURATION,
        flash_sale_id=settings.FLASH_SALE_ID,
    )

    try:
        summary = asyncio.run(run(settings))
    except KeyboardInterrupt:
        print("\n⛔ Interrupted")
        return 130

    print(render_text(summary))
    if settings.REPORT_PATH:
        write_summary(summary, settings.REPORT_PATH)
    return 0


if __name__ == "__main__":
    sys.exit(main())
