"""Default workflow under test: a sequence of delayed activities."""

from datetime import timedelta
from typing import Any, Dict

from temporalio import workflow

with workflow.unsafe.imports_passed_through():
    from activities.basic_activities import basic_activity
    from models.bench_models import BasicActivityRequest, BasicWorkflowRequest


@workflow.defn(name="basic-workflow")
class BasicWorkflow:
    """Runs ``sequenceCount`` activities one after another and returns ``resultPayload``."""

    @workflow.run
    async def run(self, request: Dict[str, Any]) -> str:
        req = BasicWorkflowRequest.model_validate(request or {})
        workflow.logger.info(f"basic workflow started, activity task queue {req.activity_task_queue}")

        activity_request = BasicActivityRequest(
            activity_delay_milliseconds=req.activity_duration_milliseconds,
            payload=req.payload,
            result_payload=req.result_payload,
        )
        for _ in range(req.sequence_count):
            result = await workflow.execute_activity(
                basic_activity,
                activity_request.to_payload(),
                task_queue=req.activity_task_queue,
                start_to_close_timeout=timedelta(milliseconds=req.activity_duration_milliseconds) + timedelta(hours=1),
            )
            workflow.logger.info(f"activity returned result to the workflow: {result}")

        workflow.logger.info("basic workflow completed")
        return req.result_payload
