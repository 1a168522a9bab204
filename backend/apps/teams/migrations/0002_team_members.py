import secrets

import apps.teams.models
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def fill_invite_codes(apps, schema_editor):
    Team = apps.get_model("teams", "Team")
    for team in Team.objects.filter(invite_code__isnull=True):
        team.invite_code = secrets.token_hex(6)
        team.save(update_fields=["invite_code"])


class Migration(migrations.Migration):

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("teams", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="team",
            name="invite_code",
            field=models.CharField(max_length=16, null=True, verbose_name="邀请码"),
        ),
        migrations.RunPython(fill_invite_codes, migrations.RunPython.noop),
        migrations.AlterField(
            model_name="team",
            name="invite_code",
            field=models.CharField(
                default=apps.teams.models.default_invite_code, max_length=16, unique=True, verbose_name="邀请码"
            ),
        ),
        migrations.AddField(
            model_name="team",
            name="max_members",
            field=models.PositiveSmallIntegerField(default=4, verbose_name="人数上限"),
        ),
        migrations.CreateModel(
            name="TeamMember",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "role",
                    models.CharField(
                        choices=[("leader", "队长"), ("member", "队员")],
                        default="member",
                        max_length=20,
                        verbose_name="角色",
                    ),
                ),
                ("joined_at", models.DateTimeField(auto_now_add=True, verbose_name="加入时间")),
                (
                    "team",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="members",
                        to="teams.team",
                        verbose_name="队伍",
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="team_membership",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="用户",
                    ),
                ),
            ],
            options={
                "verbose_name": "队伍成员",
                "verbose_name_plural": "队伍成员",
                "ordering": ["team_id", "joined_at", "id"],
            },
        ),
    ]
