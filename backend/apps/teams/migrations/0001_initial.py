import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("challenges", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Team",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=50, unique=True, verbose_name="队伍名称")),
                ("slug", models.SlugField(max_length=80, unique=True, verbose_name="队伍标识")),
                ("description", models.CharField(blank=True, max_length=200, verbose_name="简介")),
                ("is_active", models.BooleanField(default=True, verbose_name="有效")),
                ("points", models.PositiveIntegerField(default=0, verbose_name="积分")),
                (
                    "unlock_code",
                    models.CharField(blank=True, max_length=64, null=True, unique=True, verbose_name="解锁码"),
                ),
                ("unlock_code_generated_at", models.DateTimeField(blank=True, null=True, verbose_name="解锁码生成时间")),
                ("buildathon_unlocked", models.BooleanField(default=False, verbose_name="已解锁 Buildathon")),
                ("buildathon_unlocked_at", models.DateTimeField(blank=True, null=True, verbose_name="解锁时间")),
                ("snapshot_pending", models.BooleanField(db_index=True, default=False, verbose_name="快照待补录")),
                ("version", models.PositiveIntegerField(default=0, verbose_name="版本号")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="创建时间")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="更新时间")),
            ],
            options={"verbose_name": "队伍", "verbose_name_plural": "队伍", "ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="RequirementSnapshotEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("challenge_id", models.PositiveBigIntegerField(verbose_name="题目 ID")),
                ("title_at_capture", models.CharField(max_length=200, verbose_name="捕获时标题")),
                ("position", models.PositiveIntegerField(default=0, verbose_name="顺序")),
                ("captured_at", models.DateTimeField(verbose_name="捕获时间")),
                (
                    "team",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="requirement_entries",
                        to="teams.team",
                        verbose_name="队伍",
                    ),
                ),
            ],
            options={
                "verbose_name": "需求快照",
                "verbose_name_plural": "需求快照",
                "ordering": ["team_id", "position", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("team", "challenge_id"), name="uniq_snapshot_team_challenge")
                ],
            },
        ),
        migrations.CreateModel(
            name="CompletionRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("is_correct", models.BooleanField(default=False, verbose_name="是否答对")),
                ("points_awarded", models.BooleanField(default=False, verbose_name="已计分")),
                ("awarded_points", models.PositiveIntegerField(default=0, verbose_name="计入分值")),
                ("attempts", models.PositiveIntegerField(default=1, verbose_name="提交次数")),
                ("completed_at", models.DateTimeField(verbose_name="首次提交时间")),
                ("solved_at", models.DateTimeField(blank=True, null=True, verbose_name="首次答对时间")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="更新时间")),
                (
                    "challenge",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="completions",
                        to="challenges.challenge",
                        verbose_name="题目",
                    ),
                ),
                (
                    "team",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="completions",
                        to="teams.team",
                        verbose_name="队伍",
                    ),
                ),
            ],
            options={
                "verbose_name": "完成记录",
                "verbose_name_plural": "完成记录",
                "ordering": ["team_id", "completed_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("team", "challenge"), name="uniq_completion_team_challenge")
                ],
            },
        ),
    ]
