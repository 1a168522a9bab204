from django.apps import AppConfig


class TeamsConfig(AppConfig):
    """
    Teams 应用配置：
    - 队伍聚合、需求快照、完成记录、解锁码与 Buildathon 解锁
    """

    default_auto_field = 'django.db.models.BigAutoField'  # 默认主键类型
    name = 'apps.teams'  # 应用路径
    label = 'teams'  # 应用标签
    verbose_name = "Teams"  # 应用在后台显示的名称
