import json
from pathlib import Path
from flash_sale_loadgen.config.logger import logger
from flash_sale_loadgen.core.checks import RunSummary


def write_summary(summary: RunSummary, path) -> Path:
    """将汇总写入 JSON 文件"""
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(summary.to_dict(), f, indent=2, ensure_ascii=False, default=str)

    logger.info(f"Summary written: {output}")
    return output
