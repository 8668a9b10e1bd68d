from __future__ import annotations

from django.conf import settings
from django.db import models


class Community(models.Model):
    name = models.CharField("nome", max_length=200)
    slug = models.SlugField("slug", max_length=120, unique=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="communities",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField("criado em", auto_now_add=True)
    updated_at = models.DateTimeField("atualizado em", auto_now=True)

    class Meta:
        verbose_name = "comunidade"
        verbose_name_plural = "comunidades"
        ordering = ("name",)

    def __str__(self) -> str:
        return self.name

    def is_managed_by(self, user) -> bool:
        if not getattr(user, "is_authenticated", False):
            return False
        if user.is_staff or user.is_superuser:
            return True
        return self.created_by_id == user.pk
