from __future__ import annotations

from django.urls import path

from .views import (
    ChallengeListView,
    ChallengeAdminCreateView,
    ChallengeActivationView,
)

app_name = "challenges"

# 路由配置：
# - 挂载在 /api/challenges/ 之下
# - 目录读取对外开放；创建与上下线仅管理员可用
urlpatterns = [
    # 题目目录
    path("", ChallengeListView.as_view(), name="list"),
    # 管理员创建题目
    path("admin/", ChallengeAdminCreateView.as_view(), name="admin-create"),
    # 管理员上下线
    path("admin/<int:challenge_id>/activation/", ChallengeActivationView.as_view(), name="admin-activation"),
]
