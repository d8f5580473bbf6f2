"""Activity of the default workflow under test."""

import asyncio
from typing import Any, Dict

from temporalio import activity

from models.bench_models import BasicActivityRequest


@activity.defn(name="basic-activity")
async def basic_activity(request: Dict[str, Any]) -> str:
    """Sleep for the requested delay and echo the result payload back."""
    req = BasicActivityRequest.model_validate(request or {})
    activity.logger.info(f"Activity: start, duration {req.activity_delay_milliseconds} ms")
    await asyncio.sleep(req.activity_delay_milliseconds / 1000)
    activity.logger.info("Activity: end")
    return req.result_payload
