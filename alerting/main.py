from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
import os

from fastapi import FastAPI, HTTPException, Path, Query, Request, status, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field, field_validator

from alerting.logging_config import setup_logging
from alerting.metrics import render_metrics
from alerting.models import (
	AlertChannel,
	AlertFilter,
	AlertRule,
	AlertTemplate,
	EscalationLevel,
	EscalationPolicy,
	MetricSample,
	SuppressionRule,
)
from alerting.rate_limit import limiter_from_env, rate_limit
from alerting.security import api_key_auth
from alerting.service import AlertingService, from_env

Severity = Literal["critical", "high", "medium", "low"]
Status = Literal["active", "acknowledged", "resolved", "suppressed"]
ChannelType = Literal["slack", "discord", "email", "webhook", "sms", "push"]
Operator = Literal["gt", "lt", "eq", "gte", "lte"]


class ErrorResponse(BaseModel):
	code: str
	message: str


class AlertCreate(BaseModel):
	title: str = Field(min_length=1, max_length=500)
	description: str = ""
	severity: Severity = "medium"
	source: str = Field(default="manual", min_length=1)
	channels: List[str] = Field(default_factory=list)
	tags: Dict[str, str] = Field(default_factory=dict)
	metadata: Dict[str, str] = Field(default_factory=dict)
	metric: Optional[str] = None
	threshold: Optional[float] = None
	current_value: Optional[float] = None
	condition: Optional[str] = None
	rule_id: Optional[str] = None


class ActorIn(BaseModel):
	actor: str = Field(min_length=1)


class SuppressIn(BaseModel):
	reason: str = Field(min_length=1)
	actor: str = Field(min_length=1)
	duration_minutes: float = Field(default=60, gt=0)


class SampleIn(BaseModel):
	name: str = Field(min_length=1)
	value: float
	tags: Dict[str, str] = Field(default_factory=dict)


class EscalationLevelIn(BaseModel):
	level: int = Field(ge=1)
	delay: float = Field(ge=0)
	channels: List[str] = Field(default_factory=list)
	actions: List[str] = Field(default_factory=list)


class EscalationPolicyIn(BaseModel):
	id: str
	name: str = ""
	levels: List[EscalationLevelIn] = Field(default_factory=list)
	max_level: int = Field(default=0, ge=0)
	enabled: bool = False

	@field_validator("levels")
	@classmethod
	def validate_levels(cls, v: List[EscalationLevelIn]) -> List[EscalationLevelIn]:
		numbers = [lvl.level for lvl in v]
		if len(set(numbers)) != len(numbers):
			raise ValueError("escalation level numbers must be unique")
		return sorted(v, key=lambda lvl: lvl.level)


class SuppressionRuleIn(BaseModel):
	id: str
	name: str = ""
	condition: str
	duration: float = Field(default=60, gt=0)
	enabled: bool = True
	reason: str = ""


class RuleIn(BaseModel):
	id: str = Field(min_length=1)
	name: str = Field(min_length=1)
	description: str = ""
	source: str = Field(min_length=1)
	metric: Optional[str] = None
	condition: Operator
	threshold: float
	severity: Severity
	enabled: bool = True
	tags: Dict[str, str] = Field(default_factory=dict)
	channels: List[str] = Field(default_factory=list)
	escalation_policy: Optional[EscalationPolicyIn] = None
	suppression_rules: List[SuppressionRuleIn] = Field(default_factory=list)
	cooldown: float = Field(default=0, ge=0)


class RuleUpdate(BaseModel):
	name: Optional[str] = None
	description: Optional[str] = None
	source: Optional[str] = None
	metric: Optional[str] = None
	condition: Optional[Operator] = None
	threshold: Optional[float] = None
	severity: Optional[Severity] = None
	enabled: Optional[bool] = None
	tags: Optional[Dict[str, str]] = None
	channels: Optional[List[str]] = None
	escalation_policy: Optional[EscalationPolicyIn] = None
	suppression_rules: Optional[List[SuppressionRuleIn]] = None
	cooldown: Optional[float] = Field(default=None, ge=0)


class ChannelIn(BaseModel):
	id: str = Field(min_length=1)
	name: str = ""
	type: ChannelType
	config: Dict[str, Any] = Field(default_factory=dict)
	enabled: bool = True


class ChannelUpdate(BaseModel):
	name: Optional[str] = None
	type: Optional[ChannelType] = None
	config: Optional[Dict[str, Any]] = None
	enabled: Optional[bool] = None


class TemplateIn(BaseModel):
	id: str = Field(min_length=1)
	name: str = ""
	type: ChannelType
	template: str = Field(min_length=1)
	variables: List[str] = Field(default_factory=list)
	enabled: bool = True


class TemplateUpdate(BaseModel):
	name: Optional[str] = None
	type: Optional[ChannelType] = None
	template: Optional[str] = None
	variables: Optional[List[str]] = None
	enabled: Optional[bool] = None


class ResultOut(BaseModel):
	ok: bool


def _policy(p: Optional[EscalationPolicyIn]) -> EscalationPolicy:
	if p is None:
		return EscalationPolicy(id="none")
	return EscalationPolicy(
		id=p.id,
		name=p.name,
		levels=[EscalationLevel(level=l.level, delay=l.delay, channels=list(l.channels), actions=list(l.actions)) for l in p.levels],
		max_level=p.max_level,
		enabled=p.enabled,
	)


def _suppressions(items: List[SuppressionRuleIn]) -> List[SuppressionRule]:
	return [SuppressionRule(**s.model_dump()) for s in items]


def _rule_out(rule: AlertRule) -> Dict[str, Any]:
	return {
		"id": rule.id,
		"name": rule.name,
		"description": rule.description,
		"source": rule.source,
		"metric": rule.metric,
		"condition": rule.condition,
		"threshold": rule.threshold,
		"severity": rule.severity,
		"enabled": rule.enabled,
		"tags": dict(rule.tags),
		"channels": list(rule.channels),
		"escalation_policy": asdict(rule.escalation_policy),
		"suppression_rules": [
			{
				"id": s.id,
				"name": s.name,
				# функции-предикаты в JSON не сериализуются
				"condition": s.condition if isinstance(s.condition, str) else getattr(s.condition, "__name__", "callable"),
				"duration": s.duration,
				"enabled": s.enabled,
				"reason": s.reason,
			}
			for s in rule.suppression_rules
		],
		"cooldown": rule.cooldown,
		"last_triggered": rule.last_triggered.isoformat() if rule.last_triggered else None,
		"created_at": rule.created_at.isoformat(),
		"updated_at": rule.updated_at.isoformat(),
	}


app = FastAPI(title="PingTower Alerting API", description="Жизненный цикл алертов: правила, эскалация, подавление, уведомления", version="0.2.0")


def get_service(request: Request) -> AlertingService:
	service: Optional[AlertingService] = getattr(request.app.state, "service", None)
	if service is None:
		raise HTTPException(status_code=503, detail="alerting service not running")
	return service


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
	return JSONResponse(status_code=exc.status_code, content=ErrorResponse(code=str(exc.status_code), message=str(exc.detail)).model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
	return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=ErrorResponse(code="400", message="validation error").model_dump())


@app.on_event("startup")
async def on_startup():
	setup_logging()
	app.state.api_key = os.getenv("API_KEY") or None
	app.state.limiter = limiter_from_env()
	# сервис можно подставить заранее (тесты), иначе собираем из окружения
	if getattr(app.state, "service", None) is None:
		app.state.service = from_env()
	await app.state.service.start()


@app.on_event("shutdown")
async def on_shutdown():
	service: Optional[AlertingService] = getattr(app.state, "service", None)
	if service is not None:
		await service.close()


@app.get("/health")
def health():
	return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint():
	payload, content_type = render_metrics()
	return PlainTextResponse(payload.decode("utf-8"), media_type=content_type)


# --- алерты ---

@app.post("/alerts", status_code=status.HTTP_201_CREATED, dependencies=[Depends(api_key_auth)])
async def create_alert(payload: AlertCreate, service: AlertingService = Depends(get_service)):
	alert = await service.create_alert(**payload.model_dump())
	return alert.to_dict()


@app.get("/alerts", dependencies=[Depends(rate_limit)])
async def list_alerts(
	service: AlertingService = Depends(get_service),
	alert_status: Optional[Status] = Query(None, alias="status"),
	severity: Optional[Severity] = None,
	source: Optional[str] = None,
	start_time: Optional[datetime] = None,
	end_time: Optional[datetime] = None,
	limit: int = Query(100, ge=1, le=1000),
	offset: int = Query(0, ge=0),
):
	flt = AlertFilter(status=alert_status, severity=severity, source=source, start_time=start_time, end_time=end_time, limit=limit, offset=offset)
	return [a.to_dict() for a in service.get_alerts(flt)]


@app.get("/alerts/{alert_id}", dependencies=[Depends(rate_limit)])
async def get_alert(alert_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	alert = service.get_alert(alert_id)
	if alert is None:
		raise HTTPException(status_code=404, detail="alert not found")
	return alert.to_dict()


def _transition_result(service: AlertingService, alert_id: str, ok: bool) -> Dict[str, Any]:
	if service.get_alert(alert_id) is None:
		raise HTTPException(status_code=404, detail="alert not found")
	if not ok:
		raise HTTPException(status_code=409, detail="transition not allowed in current status")
	return service.get_alert(alert_id).to_dict()


@app.post("/alerts/{alert_id}/acknowledge", dependencies=[Depends(api_key_auth)])
async def acknowledge_alert(payload: ActorIn, alert_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	return _transition_result(service, alert_id, service.acknowledge_alert(alert_id, payload.actor))


@app.post("/alerts/{alert_id}/resolve", dependencies=[Depends(api_key_auth)])
async def resolve_alert(payload: ActorIn, alert_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	return _transition_result(service, alert_id, service.resolve_alert(alert_id, payload.actor))


@app.post("/alerts/{alert_id}/suppress", dependencies=[Depends(api_key_auth)])
async def suppress_alert(payload: SuppressIn, alert_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	ok = service.suppress_alert(alert_id, payload.reason, payload.actor, payload.duration_minutes)
	return _transition_result(service, alert_id, ok)


@app.post("/alerts/{alert_id}/unsuppress", dependencies=[Depends(api_key_auth)])
async def unsuppress_alert(alert_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	ok = await service.unsuppress_alert(alert_id)
	return _transition_result(service, alert_id, ok)


@app.post("/samples", dependencies=[Depends(api_key_auth)])
async def ingest_sample(payload: SampleIn, service: AlertingService = Depends(get_service)):
	created = await service.evaluate_rules(MetricSample(name=payload.name, value=payload.value, tags=dict(payload.tags)))
	return [a.to_dict() for a in created]


@app.get("/stats", dependencies=[Depends(rate_limit)])
async def get_stats(service: AlertingService = Depends(get_service)):
	return service.get_stats().to_dict()


# --- правила ---

@app.get("/rules", dependencies=[Depends(rate_limit)])
async def list_rules(service: AlertingService = Depends(get_service)):
	return [_rule_out(r) for r in service.list_rules()]


@app.post("/rules", status_code=status.HTTP_201_CREATED, dependencies=[Depends(api_key_auth)])
async def create_rule(payload: RuleIn, service: AlertingService = Depends(get_service)):
	if service.get_rule(payload.id) is not None:
		raise HTTPException(status_code=409, detail="rule id already exists")
	data = payload.model_dump(exclude={"escalation_policy", "suppression_rules"})
	rule = AlertRule(**data, escalation_policy=_policy(payload.escalation_policy), suppression_rules=_suppressions(payload.suppression_rules))
	service.add_rule(rule)
	return _rule_out(rule)


@app.put("/rules/{rule_id}", dependencies=[Depends(api_key_auth)])
async def update_rule(payload: RuleUpdate, rule_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	changes = payload.model_dump(exclude_unset=True, exclude={"escalation_policy", "suppression_rules"})
	if "escalation_policy" in payload.model_fields_set:
		changes["escalation_policy"] = _policy(payload.escalation_policy)
	if payload.suppression_rules is not None:
		changes["suppression_rules"] = _suppressions(payload.suppression_rules)
	if not service.update_rule(rule_id, **changes):
		raise HTTPException(status_code=404, detail="rule not found")
	return _rule_out(service.get_rule(rule_id))


@app.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(api_key_auth)])
async def delete_rule(rule_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	if not service.remove_rule(rule_id):
		raise HTTPException(status_code=404, detail="rule not found")
	return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- каналы ---

@app.get("/channels", dependencies=[Depends(rate_limit)])
async def list_channels(service: AlertingService = Depends(get_service)):
	return [asdict(c) for c in service.list_channels()]


@app.post("/channels", status_code=status.HTTP_201_CREATED, dependencies=[Depends(api_key_auth)])
async def create_channel(payload: ChannelIn, service: AlertingService = Depends(get_service)):
	if service.get_channel(payload.id) is not None:
		raise HTTPException(status_code=409, detail="channel id already exists")
	channel = AlertChannel(**payload.model_dump())
	service.add_channel(channel)
	return asdict(channel)


@app.put("/channels/{channel_id}", dependencies=[Depends(api_key_auth)])
async def update_channel(payload: ChannelUpdate, channel_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	if not service.update_channel(channel_id, **payload.model_dump(exclude_unset=True)):
		raise HTTPException(status_code=404, detail="channel not found")
	return asdict(service.get_channel(channel_id))


@app.delete("/channels/{channel_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(api_key_auth)])
async def delete_channel(channel_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	if not service.remove_channel(channel_id):
		raise HTTPException(status_code=404, detail="channel not found")
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/channels/{channel_id}/test", response_model=ResultOut, dependencies=[Depends(api_key_auth)])
async def test_channel(channel_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	if service.get_channel(channel_id) is None:
		raise HTTPException(status_code=404, detail="channel not found")
	return ResultOut(ok=await service.test_channel(channel_id))


# --- шаблоны ---

@app.get("/templates", dependencies=[Depends(rate_limit)])
async def list_templates(service: AlertingService = Depends(get_service)):
	return [asdict(t) for t in service.list_templates()]


@app.post("/templates", status_code=status.HTTP_201_CREATED, dependencies=[Depends(api_key_auth)])
async def create_template(payload: TemplateIn, service: AlertingService = Depends(get_service)):
	if service.get_template(payload.id) is not None:
		raise HTTPException(status_code=409, detail="template id already exists")
	template = AlertTemplate(**payload.model_dump())
	service.add_template(template)
	return asdict(template)


@app.put("/templates/{template_id}", dependencies=[Depends(api_key_auth)])
async def update_template(payload: TemplateUpdate, template_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	if not service.update_template(template_id, **payload.model_dump(exclude_unset=True)):
		raise HTTPException(status_code=404, detail="template not found")
	return asdict(service.get_template(template_id))


@app.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(api_key_auth)])
async def delete_template(template_id: str = Path(min_length=1), service: AlertingService = Depends(get_service)):
	if not service.remove_template(template_id):
		raise HTTPException(status_code=404, detail="template not found")
	return Response(status_code=status.HTTP_204_NO_CONTENT)
