"""
Add celery-beat schedule for the daily overdue invoice sweep.

This migration creates the periodic task that runs
billing.tasks.mark_overdue_invoices once a day.
"""

from django.db import migrations

TASK_NAME = "Mark Overdue Invoices"


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for the overdue sweep."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="days",
    )

    PeriodicTask.objects.get_or_create(
        name=TASK_NAME,
        defaults={
            "task": "billing.tasks.mark_overdue_invoices",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Moves invoices past their due date with an outstanding "
                "balance to overdue."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name=TASK_NAME).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
