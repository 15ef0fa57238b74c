from django.db import models

from accounts.models import User


class Chat(models.Model):
    name = models.CharField(max_length=128)
    members = models.ManyToManyField(User, through='ChatMember', related_name='chats')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['name'], name='unique_chat_name'),
            models.CheckConstraint(condition=~models.Q(name=''), name='chat_name_not_blank'),
        ]

    def __str__(self):
        return self.name


class ChatMember(models.Model):
    chat = models.ForeignKey(Chat, on_delete=models.PROTECT, related_name='memberships')
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='memberships')

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['chat', 'user'], name='unique_chat_member')
        ]

    def __str__(self):
        return f"{self.user} in {self.chat}"


class Message(models.Model):
    chat = models.ForeignKey(Chat, on_delete=models.PROTECT, related_name='messages')
    author = models.ForeignKey(User, on_delete=models.PROTECT, related_name='messages')
    text = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=~models.Q(text=''), name='message_text_not_blank'),
        ]

    def __str__(self):
        return f"Message {self.pk} in {self.chat_id}"
