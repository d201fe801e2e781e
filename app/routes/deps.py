"""Request-scoped access to the collaborators built at startup (see app.main)"""
from fastapi import Request

from app.services.notifications import NotificationFanout
from app.services.stripe_processor import StripeProcessor
from app.services.webhook_reconciler import WebhookReconciler


def get_processor(request: Request) -> StripeProcessor:
    return request.app.state.processor


def get_fanout(request: Request) -> NotificationFanout:
    return request.app.state.fanout


def get_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.reconciler
