"""Recovery email funnel (sent -> opened -> clicked -> converted)."""

from typing import Iterable

from cartrecovery.analytics.formatting import percentage
from cartrecovery.analytics.records import EmailAction
from cartrecovery.models import ActionType
from cartrecovery.schemas import FunnelOut


def analyze_funnel(actions: Iterable[EmailAction]) -> FunnelOut:
    """Count funnel stages over the emails sent in the window.

    Every rate is a percentage of `sent` except `click_to_conversion`, which
    is converted / clicked. Counts are taken straight from the tracking flags;
    nothing is inferred between stages (a click without a tracked open is
    still a click).
    """
    sent = opened = clicked = converted = 0
    for action in actions:
        if action.action_type != ActionType.email_sent:
            continue
        sent += 1
        opened += action.opened
        clicked += action.clicked
        converted += action.converted

    return FunnelOut(
        sent=sent,
        opened=opened,
        clicked=clicked,
        converted=converted,
        open_rate=percentage(opened, sent),
        click_rate=percentage(clicked, sent),
        conversion_rate=percentage(converted, sent),
        click_to_conversion=percentage(converted, clicked),
    )
