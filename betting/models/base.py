from django.db import models


class TimestampedModel(models.Model):
    """
    Abstract base that stamps rows with creation and last-update times.

    Ordering is newest first with the primary key as tie-break, so listings
    stay stable when several rows share a timestamp.
    """

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at", "-id"]
