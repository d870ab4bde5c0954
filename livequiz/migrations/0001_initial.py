import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("decks", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="GameSession",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(db_index=True, max_length=16)),
                ("host_id", models.CharField(max_length=64)),
                (
                    "mode",
                    models.CharField(
                        choices=[("single", "Single"), ("teams", "Teams")],
                        default="single",
                        max_length=16,
                    ),
                ),
                ("team_size", models.PositiveIntegerField(default=4)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("waiting", "Waiting"),
                            ("in_progress", "In progress"),
                            ("completed", "Completed"),
                        ],
                        db_index=True,
                        default="waiting",
                        max_length=16,
                    ),
                ),
                ("current_card_index", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "completed_reason",
                    models.CharField(
                        blank=True,
                        choices=[("exhausted", "Deck exhausted"), ("aborted", "Ended by host")],
                        max_length=16,
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "deck",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="game_sessions",
                        to="decks.flashcardset",
                    ),
                ),
            ],
            options={
                "verbose_name": "Game Session",
                "verbose_name_plural": "Game Sessions",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Participant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("display_name", models.CharField(max_length=128)),
                ("user_id", models.CharField(blank=True, max_length=64, null=True)),
                ("team_number", models.PositiveIntegerField(blank=True, null=True)),
                ("score", models.PositiveIntegerField(default=0)),
                ("joined_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="participants",
                        to="livequiz.gamesession",
                    ),
                ),
            ],
            options={
                "ordering": ["joined_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="GameResponse",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("card_index", models.PositiveIntegerField()),
                ("is_correct", models.BooleanField()),
                ("response_time_ms", models.PositiveIntegerField(blank=True, null=True)),
                ("answered_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "flashcard",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="game_responses",
                        to="decks.flashcard",
                    ),
                ),
                (
                    "participant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="responses",
                        to="livequiz.participant",
                    ),
                ),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="responses",
                        to="livequiz.gamesession",
                    ),
                ),
            ],
            options={
                "ordering": ["answered_at", "id"],
            },
        ),
        migrations.AddConstraint(
            model_name="gameresponse",
            constraint=models.UniqueConstraint(
                fields=("participant", "card_index"),
                name="livequiz_one_response_per_card",
            ),
        ),
    ]
