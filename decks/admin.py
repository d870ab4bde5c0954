from django.contrib import admin

from .models import Flashcard, FlashcardSet, StudyProgress


class FlashcardInline(admin.TabularInline):
    model = Flashcard
    extra = 0
    ordering = ("position", "id")


@admin.register(FlashcardSet)
class FlashcardSetAdmin(admin.ModelAdmin):
    list_display = ("title", "owner_id", "is_public", "updated_at")
    list_filter = ("is_public",)
    search_fields = ("title", "description")
    inlines = [FlashcardInline]


@admin.register(Flashcard)
class FlashcardAdmin(admin.ModelAdmin):
    list_display = ("term", "set", "position")
    search_fields = ("term", "definition")
    ordering = ("set", "position")


@admin.register(StudyProgress)
class StudyProgressAdmin(admin.ModelAdmin):
    list_display = ("user_id", "flashcard", "mastery_level", "times_reviewed", "last_studied_at")
    list_filter = ("mastery_level", "is_starred")
    search_fields = ("user_id", "flashcard__term")
    raw_id_fields = ("flashcard",)
