"""Alert rule and alert log API endpoints."""

from fastapi import APIRouter, HTTPException, Query, status

from fieldtelemetry.core.deps import DBSession
from fieldtelemetry.schemas.alert import AlertLogDTO, AlertRuleCreate, AlertRuleDTO
from fieldtelemetry.services.alert_service import AlertService

router = APIRouter()


# Log routes MUST be before /{device_id}/{rule_id}


@router.get("/{device_id}/logs", response_model=list[AlertLogDTO])
async def get_alert_logs(
    device_id: str,
    db: DBSession,
    limit: int = Query(50, ge=1, le=1000),
) -> list[AlertLogDTO]:
    """Get most recent alert and recovery logs of a device."""
    alert_service = AlertService(db)
    return await alert_service.get_logs(device_id, limit)


@router.delete("/{device_id}/logs")
async def clear_alert_logs(
    device_id: str,
    db: DBSession,
) -> dict:
    """Delete all alert logs of a device."""
    alert_service = AlertService(db)
    deleted = await alert_service.clear_logs(device_id)
    return {"status": "success", "deleted": deleted}


@router.get("/{device_id}", response_model=list[AlertRuleDTO])
async def get_alert_rules(
    device_id: str,
    db: DBSession,
) -> list[AlertRuleDTO]:
    """Get all alert rules of a device."""
    alert_service = AlertService(db)
    return await alert_service.get_rules(device_id)


@router.post("/{device_id}", response_model=AlertRuleDTO)
async def save_alert_rule(
    device_id: str,
    data: AlertRuleCreate,
    db: DBSession,
) -> AlertRuleDTO:
    """
    Create or update an alert rule.

    - **id**: Existing rule id to update (omit to create)
    - **sensorName**: Reading name, e.g. `SHT20_CH1`
    - **valueIndex**: Index into the reading's values
    - **conditionType**: `above` or `below`
    - **thresholdValue**: Threshold
    - **isActive**: Whether the rule is evaluated
    """
    alert_service = AlertService(db)
    result = await alert_service.save_rule(device_id, data)

    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Alert rule not found",
        )

    return result


@router.delete("/{device_id}/{rule_id}")
async def delete_alert_rule(
    device_id: str,
    rule_id: int,
    db: DBSession,
) -> dict:
    """Delete an alert rule."""
    alert_service = AlertService(db)
    success = await alert_service.delete_rule(device_id, rule_id)

    if not success:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Alert rule not found",
        )

    return {"status": "success"}
