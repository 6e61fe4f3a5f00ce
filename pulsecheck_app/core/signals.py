"""Signal handlers for core app models."""

import logging

from django.contrib.auth import get_user_model
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .models import Document, UserProfile
from .store import document_changed

User = get_user_model()
logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    """Create UserProfile automatically when a new user is created."""
    if created:
        UserProfile.objects.get_or_create(user=instance)


@receiver(post_save, sender=Document)
def notify_document_saved(sender, instance, **kwargs):
    document_changed.send(
        sender=Document, collection=instance.collection, key=instance.key
    )


@receiver(post_delete, sender=Document)
def notify_document_deleted(sender, instance, **kwargs):
    document_changed.send(
        sender=Document, collection=instance.collection, key=instance.key
    )
