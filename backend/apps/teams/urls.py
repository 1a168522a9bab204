from __future__ import annotations

from django.urls import path

from .views import (
    BuildathonUnlockView,
    CompletionRecordView,
    CompletionRevokeView,
    LeaderboardView,
    MyTeamView,
    ReevaluateView,
    SystemHealthView,
    TeamCreateView,
    TeamDetailView,
    TeamEligibilityView,
    TeamJoinView,
    TeamLeaveView,
    UnlockCodeResetView,
)

app_name = "teams"

# 路由配置：挂载在 /api/teams/ 之下；admin/ 前缀的接口仅管理员可用
urlpatterns = [
    path("", TeamCreateView.as_view(), name="create"),
    path("mine/", MyTeamView.as_view(), name="mine"),
    path("join/", TeamJoinView.as_view(), name="join"),
    path("leave/", TeamLeaveView.as_view(), name="leave"),
    path("leaderboard/", LeaderboardView.as_view(), name="leaderboard"),
    path("admin/health/", SystemHealthView.as_view(), name="admin-health"),
    path("admin/reevaluate/", ReevaluateView.as_view(), name="admin-reevaluate"),
    path("<int:team_id>/", TeamDetailView.as_view(), name="detail"),
    path("<int:team_id>/completions/", CompletionRecordView.as_view(), name="completions"),
    path("<int:team_id>/eligibility/", TeamEligibilityView.as_view(), name="eligibility"),
    path("<int:team_id>/buildathon/unlock/", BuildathonUnlockView.as_view(), name="buildathon-unlock"),
    path(
        "<int:team_id>/admin/reset-unlock-code/",
        UnlockCodeResetView.as_view(),
        name="admin-reset-unlock-code",
    ),
    path(
        "<int:team_id>/admin/completions/<int:challenge_id>/revoke/",
        CompletionRevokeView.as_view(),
        name="admin-completion-revoke",
    ),
]
