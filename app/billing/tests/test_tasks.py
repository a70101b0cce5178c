"""Tests for billing Celery tasks and their beat schedule."""

from datetime import timedelta

import pytest
from django.utils import timezone
from django_celery_beat.models import PeriodicTask

from billing.models import Invoice
from billing.state_machines import InvoiceStatus
from billing.tasks import mark_overdue_invoices
from billing.tests.factories import InvoiceFactory


@pytest.mark.django_db
class TestMarkOverdueInvoicesTask:
    def test_marks_past_due_invoices(self):
        invoice = InvoiceFactory(due_date=timezone.localdate() - timedelta(days=1))
        InvoiceFactory()

        result = mark_overdue_invoices()

        assert result == {"updated_count": 1}
        assert Invoice.objects.get(pk=invoice.pk).status == InvoiceStatus.OVERDUE

    def test_nothing_to_do(self):
        assert mark_overdue_invoices.apply().get() == {"updated_count": 0}

    def test_daily_schedule_is_installed(self):
        task = PeriodicTask.objects.get(name="Mark Overdue Invoices")

        assert task.task == "billing.tasks.mark_overdue_invoices"
        assert task.enabled
        assert task.interval.every == 1
        assert task.interval.period == "days"
