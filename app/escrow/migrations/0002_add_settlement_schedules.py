"""
Add celery-beat schedules for the settlement jobs.

- Room fee release: every 5 minutes
- Deposit return: every 5 minutes
- Payout eligibility: every 60 minutes
- Dispute SLA sweep: every 60 minutes
- Expired job lock cleanup: every 60 minutes
"""

from django.db import migrations

SCHEDULES = [
    (
        "Release Room Fees",
        "escrow.tasks.run_room_fee_release",
        5,
        "Releases room fees of checked-in bookings past the dispute window.",
    ),
    (
        "Return Security Deposits",
        "escrow.tasks.run_deposit_return",
        5,
        "Refunds security deposits to guests after check-out.",
    ),
    (
        "Process Realtor Payouts",
        "escrow.tasks.run_payout_eligibility",
        60,
        "Marks due payouts ready and transfers realtor earnings.",
    ),
    (
        "Sweep Overdue Disputes",
        "escrow.tasks.run_dispute_sla",
        60,
        "Auto-resolves escalated disputes whose admin deadline has passed.",
    ),
    (
        "Clean Up Expired Job Locks",
        "escrow.tasks.cleanup_expired_job_locks",
        60,
        "Removes job locks left behind by crashed runs.",
    ),
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for name, task, minutes, description in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=minutes,
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=name,
            defaults={
                "task": task,
                "interval": schedule,
                "enabled": True,
                "description": description,
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[name for name, *_ in SCHEDULES]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("escrow", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
