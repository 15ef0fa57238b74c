from django.db import models


class User(models.Model):
    username = models.CharField(max_length=128)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['username'], name='unique_username'),
            models.CheckConstraint(condition=~models.Q(username=''), name='username_not_blank'),
        ]

    def __str__(self):
        return self.username
