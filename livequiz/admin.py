from django.contrib import admin

from .models import GameResponse, GameSession, Participant


class ParticipantInline(admin.TabularInline):
    model = Participant
    extra = 0
    readonly_fields = ("joined_at",)


@admin.register(GameSession)
class GameSessionAdmin(admin.ModelAdmin):
    list_display = ("code", "deck", "host_id", "mode", "status", "current_card_index", "created_at")
    list_filter = ("status", "mode")
    search_fields = ("code", "host_id")
    readonly_fields = ("started_at", "completed_at", "completed_reason")
    inlines = [ParticipantInline]


@admin.register(GameResponse)
class GameResponseAdmin(admin.ModelAdmin):
    list_display = ("session", "participant", "card_index", "is_correct", "response_time_ms")
    list_filter = ("is_correct",)
