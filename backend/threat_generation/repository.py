"""DynamoDB persistence for threat models, their context files and tickets."""

import decimal
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
from config import GenerationConfig
from constants import (
    AWS_SERVICE_DYNAMODB,
    ERROR_GENERATION_IN_PROGRESS,
    ERROR_THREAT_MODEL_NOT_FOUND,
    MESSAGE_COMPLETE,
    MESSAGE_STARTED,
    PROGRESS_COMPLETE,
    PROGRESS_STARTED,
    ThreatModelStatus,
)
from exceptions import ConflictError, NotFoundError
from monitoring import logger, with_error_context
from state import ContextFile, GenerationResult, ThreatModel, TicketRecord

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def convert_decimals(obj):
    """Recursively converts Decimal to float or int in a dictionary."""
    if isinstance(obj, list):
        return [convert_decimals(i) for i in obj]
    elif isinstance(obj, dict):
        return {k: convert_decimals(v) for k, v in obj.items()}
    elif isinstance(obj, decimal.Decimal):
        return (
            int(obj) if obj % 1 == 0 else float(obj)
        )  # Convert to int if it's a whole number
    else:
        return obj


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED


class ThreatModelRepository:
    """
    Reads and status-guarded writes over three tables.

    Threat models are keyed by ``id``; context files and tickets are keyed
    by ``threat_model_id`` (partition) and ``id`` (sort).
    """

    def __init__(self, threat_model_table: Any, file_table: Any, ticket_table: Any):
        self.threat_model_table = threat_model_table
        self.file_table = file_table
        self.ticket_table = ticket_table

    @classmethod
    def from_config(
        cls, config: GenerationConfig, dynamodb: Optional[Any] = None
    ) -> "ThreatModelRepository":
        dynamodb = dynamodb or boto3.resource(
            AWS_SERVICE_DYNAMODB, region_name=config.region
        )
        return cls(
            dynamodb.Table(config.threat_model_table),
            dynamodb.Table(config.context_file_table),
            dynamodb.Table(config.ticket_table),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @with_error_context("load threat model from dynamodb")
    def load_threat_model(self, threat_model_id: str) -> Optional[ThreatModel]:
        response = self.threat_model_table.get_item(Key={"id": threat_model_id})
        item = response.get("Item")
        if not item:
            return None
        return ThreatModel.model_validate(convert_decimals(item))

    @with_error_context("load context files from dynamodb")
    def load_files(self, threat_model_id: str) -> List[ContextFile]:
        items = self._query_children(self.file_table, threat_model_id)
        return [ContextFile.model_validate(item) for item in items]

    @with_error_context("load tickets from dynamodb")
    def load_tickets(self, threat_model_id: str) -> List[TicketRecord]:
        items = self._query_children(self.ticket_table, threat_model_id)
        return [TicketRecord.model_validate(item) for item in items]

    def _query_children(self, table: Any, threat_model_id: str) -> List[Dict]:
        items = []
        query_kwargs = {
            "KeyConditionExpression": Key("threat_model_id").eq(threat_model_id)
        }
        while True:
            response = table.query(**query_kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            query_kwargs["ExclusiveStartKey"] = last_key

        # Upload order, for a stable manifest
        items = [convert_decimals(item) for item in items]
        items.sort(key=lambda item: item.get("created_at") or "")
        return items

    @with_error_context("scan generating threat models in dynamodb")
    def list_generating(self) -> List[ThreatModel]:
        models = []
        scan_kwargs = {
            "FilterExpression": Attr("status").eq(ThreatModelStatus.GENERATING.value)
        }
        while True:
            response = self.threat_model_table.scan(**scan_kwargs)
            models.extend(
                ThreatModel.model_validate(convert_decimals(item))
                for item in response.get("Items", [])
            )
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key
        return models

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @with_error_context("mark threat model generating in dynamodb")
    def mark_generating(self, threat_model_id: str) -> None:
        """
        Admit a generation attempt.

        The write succeeds only if the item exists and is not already
        generating, so at most one attempt per id is ever admitted.

        Raises:
            NotFoundError: If the threat model does not exist.
            ConflictError: If an attempt is already in flight.
        """
        try:
            self.threat_model_table.update_item(
                Key={"id": threat_model_id},
                UpdateExpression=(
                    "SET #status = :generating, generation_started_at = :started, "
                    "generation_progress = :progress, generation_message = :message, "
                    "updated_at = :started REMOVE generation_error, generation_completed_at"
                ),
                ConditionExpression="attribute_exists(#id) AND #status <> :generating",
                ExpressionAttributeNames={"#id": "id", "#status": "status"},
                ExpressionAttributeValues={
                    ":generating": ThreatModelStatus.GENERATING.value,
                    ":started": _now(),
                    ":progress": PROGRESS_STARTED,
                    ":message": MESSAGE_STARTED,
                },
            )
        except ClientError as e:
            if not _is_conditional_failure(e):
                raise
            item = self.threat_model_table.get_item(Key={"id": threat_model_id}).get(
                "Item"
            )
            if not item:
                raise NotFoundError(ERROR_THREAT_MODEL_NOT_FOUND) from e
            raise ConflictError(
                {
                    "message": ERROR_GENERATION_IN_PROGRESS,
                    "threatModelId": threat_model_id,
                }
            ) from e

    @with_error_context("update generation progress in dynamodb")
    def update_progress(self, threat_model_id: str, progress: int, message: str) -> bool:
        return self._guarded_update(
            threat_model_id,
            "SET generation_progress = :progress, generation_message = :message",
            {":progress": progress, ":message": message},
        )

    @with_error_context("update threat model status in dynamodb")
    def update_status(
        self,
        threat_model_id: str,
        status: ThreatModelStatus,
        error: Optional[str] = None,
        expected_status: Optional[ThreatModelStatus] = ThreatModelStatus.GENERATING,
    ) -> bool:
        """
        Set the lifecycle status, optionally recording an error.

        Returns False when the item was no longer in ``expected_status``.
        """
        update_expression = "SET #status = :status, updated_at = :now"
        values = {":status": status.value, ":now": _now()}
        if error is not None:
            update_expression += ", generation_error = :error"
            values[":error"] = error
        return self._guarded_update(
            threat_model_id, update_expression, values, expected_status
        )

    @with_error_context("persist generation result in dynamodb")
    def update_result(self, threat_model_id: str, result: GenerationResult) -> bool:
        """Store the threats and mark the model completed in a single write."""
        now = _now()
        return self._guarded_update(
            threat_model_id,
            (
                "SET #status = :completed, threats = :threats, summary = :summary, "
                "recommendations = :recommendations, generation_completed_at = :now, "
                "generation_progress = :progress, generation_message = :message, "
                "updated_at = :now"
            ),
            {
                ":completed": ThreatModelStatus.COMPLETED.value,
                ":threats": [t.model_dump(mode="json") for t in result.threats],
                ":summary": result.summary,
                ":recommendations": list(result.recommendations),
                ":now": now,
                ":progress": PROGRESS_COMPLETE,
                ":message": MESSAGE_COMPLETE,
            },
        )

    def _guarded_update(
        self,
        threat_model_id: str,
        update_expression: str,
        values: Dict[str, Any],
        expected_status: Optional[ThreatModelStatus] = ThreatModelStatus.GENERATING,
    ) -> bool:
        names = {"#status": "status"} if "#status" in update_expression else {}
        kwargs = {
            "Key": {"id": threat_model_id},
            "UpdateExpression": update_expression,
            "ExpressionAttributeValues": dict(values),
        }
        if expected_status is not None:
            names["#status"] = "status"
            kwargs["ConditionExpression"] = "#status = :expected"
            kwargs["ExpressionAttributeValues"][":expected"] = expected_status.value
        if names:
            kwargs["ExpressionAttributeNames"] = names

        try:
            self.threat_model_table.update_item(**kwargs)
        except ClientError as e:
            if not _is_conditional_failure(e):
                raise
            logger.warning(
                "Skipped threat model write, status changed",
                threat_model_id=threat_model_id,
                expected_status=expected_status.value if expected_status else None,
            )
            return False
        return True
