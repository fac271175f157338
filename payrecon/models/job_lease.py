from tortoise import fields, models


class JobLease(models.Model):
    """
    One row per periodic job class. A run owns the job while ``owner`` is its token
    and ``expires_at`` is in the future; a crashed run's lease lapses on its own.
    """
    name = fields.CharField(max_length=64, primary_key=True)
    owner = fields.CharField(max_length=64, null=True)
    claimed_at = fields.DatetimeField(null=True)
    expires_at = fields.DatetimeField(null=True)

    class Meta:
        table = "job_leases"
