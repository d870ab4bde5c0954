from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("livequiz", "0001_initial"),
    ]

    operations = [
        migrations.AddConstraint(
            model_name="gamesession",
            constraint=models.UniqueConstraint(
                condition=models.Q(("status", "completed"), _negated=True),
                fields=("code",),
                name="livequiz_active_code_unique",
            ),
        ),
    ]
