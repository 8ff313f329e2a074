from __future__ import annotations

import os
from typing import List

from .models import AlertChannel, AlertRule, AlertTemplate, EscalationLevel, EscalationPolicy
from .notifier.templates import BASE_VARIABLES
from .notifier.webhook import CONSOLE_URL


def default_channels() -> List[AlertChannel]:
	"""Консольный webhook и Slack/Discord из окружения (включены только при заданном URL)."""
	slack = os.getenv("SLACK_WEBHOOK_URL", "").strip()
	discord = os.getenv("DISCORD_WEBHOOK_URL", "").strip()
	return [
		AlertChannel(id="console", name="Console", type="webhook", config={"url": CONSOLE_URL}, enabled=True),
		AlertChannel(id="slack-default", name="Slack Default", type="slack", config={"webhook_url": slack}, enabled=bool(slack)),
		AlertChannel(id="discord-default", name="Discord Default", type="discord", config={"webhook_url": discord}, enabled=bool(discord)),
	]


_SLACK = """🚨 *{{title}}*
*Severity:* {{severity}}
*Source:* {{source}}
*Description:* {{description}}
*Time:* {{timestamp}}
*Tags:* {{tags}}"""

_DISCORD = """🚨 **{{title}}**
**Severity:** {{severity}}
**Source:** {{source}}
**Description:** {{description}}
**Time:** {{timestamp}}
**Tags:** {{tags}}"""

_EMAIL = """Subject: [{{severity}}] {{title}}

Alert Details:
- Title: {{title}}
- Severity: {{severity}}
- Source: {{source}}
- Description: {{description}}
- Time: {{timestamp}}
- Tags: {{tags}}

Please investigate this alert immediately."""

_WEBHOOK = "[{{severity}}] {{title}} ({{source}}): {{description}} at {{timestamp}} tags={{tags}}"


def default_templates() -> List[AlertTemplate]:
	return [
		AlertTemplate(id="slack-alert", name="Slack Alert Template", type="slack", template=_SLACK, variables=list(BASE_VARIABLES)),
		AlertTemplate(id="discord-alert", name="Discord Alert Template", type="discord", template=_DISCORD, variables=list(BASE_VARIABLES)),
		AlertTemplate(id="email-alert", name="Email Alert Template", type="email", template=_EMAIL, variables=list(BASE_VARIABLES)),
		AlertTemplate(id="webhook-alert", name="Webhook Alert Template", type="webhook", template=_WEBHOOK, variables=list(BASE_VARIABLES)),
	]


def default_rules() -> List[AlertRule]:
	return [
		AlertRule(
			id="high-error-rate",
			name="High Error Rate",
			description="Alert when error rate exceeds threshold",
			source="application",
			metric="error.rate",
			condition="gt",
			threshold=10,
			severity="high",
			tags={"component": "error-handling"},
			channels=["console"],
			escalation_policy=EscalationPolicy(
				id="default-escalation",
				name="Default Escalation",
				levels=[
					EscalationLevel(level=1, delay=5, channels=["console"], actions=["notify"]),
					EscalationLevel(level=2, delay=15, channels=["slack-default"], actions=["notify", "escalate"]),
					EscalationLevel(level=3, delay=30, channels=["discord-default"], actions=["notify", "escalate", "page"]),
				],
				max_level=3,
				enabled=True,
			),
			cooldown=15,
		),
	]
