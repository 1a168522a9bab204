from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Challenge",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(help_text="展示给队伍的题目名称", max_length=200, verbose_name="题目标题")),
                (
                    "slug",
                    models.SlugField(
                        help_text="题目唯一标识，供接口/URL 使用", max_length=200, unique=True, verbose_name="题目标识"
                    ),
                ),
                ("description", models.TextField(blank=True, help_text="完整题面描述", verbose_name="题目内容")),
                (
                    "phase",
                    models.CharField(
                        choices=[("algorithmic", "算法阶段"), ("buildathon", "Buildathon 阶段")],
                        db_index=True,
                        default="algorithmic",
                        help_text="算法阶段题目构成解锁要求；Buildathon 题目需兑换解锁码后才能作答",
                        max_length=20,
                        verbose_name="所属阶段",
                    ),
                ),
                (
                    "difficulty",
                    models.CharField(
                        choices=[("easy", "Easy"), ("medium", "Medium"), ("hard", "Hard")],
                        default="medium",
                        help_text="题目难度标签，供队伍参考",
                        max_length=20,
                        verbose_name="难度",
                    ),
                ),
                (
                    "points",
                    models.PositiveIntegerField(default=100, help_text="答对时计入队伍积分的分值", verbose_name="分值"),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        db_index=True, default=True, help_text="关闭即下线，不再计入解锁要求", verbose_name="是否开放"
                    ),
                ),
                (
                    "order",
                    models.PositiveIntegerField(
                        default=0, help_text="题目目录中的展示顺序，数值越小越靠前", verbose_name="排序"
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="创建时间")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="更新时间")),
                (
                    "prerequisites",
                    models.ManyToManyField(
                        blank=True,
                        help_text="需先提交过这些题目才能作答本题",
                        related_name="unlocks",
                        to="challenges.challenge",
                        verbose_name="前置题目",
                    ),
                ),
            ],
            options={"verbose_name": "题目", "verbose_name_plural": "题目", "ordering": ["order", "id"]},
        ),
    ]
