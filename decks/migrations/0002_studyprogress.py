import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("decks", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="StudyProgress",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_id", models.CharField(db_index=True, max_length=64)),
                (
                    "mastery_level",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="0 (new) to 5; a card counts as mastered from level 4.",
                    ),
                ),
                ("times_reviewed", models.PositiveIntegerField(default=0)),
                ("times_correct", models.PositiveIntegerField(default=0)),
                ("is_starred", models.BooleanField(default=False)),
                ("last_studied_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "flashcard",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="study_progress",
                        to="decks.flashcard",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Study progress",
                "ordering": ["last_studied_at", "id"],
            },
        ),
        migrations.AddConstraint(
            model_name="studyprogress",
            constraint=models.UniqueConstraint(
                fields=("user_id", "flashcard"),
                name="decks_one_progress_per_user_card",
            ),
        ),
    ]
