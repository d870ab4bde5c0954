from django.urls import path

from . import views

app_name = "livequiz"

urlpatterns = [
    path("session/", views.create_session, name="create_session"),
    path("session/<str:code>/join/", views.join_session, name="join_session"),
    path("session/<str:key>/players/", views.list_players, name="list_players"),
    path("session/<str:key>/mode/", views.set_mode, name="set_mode"),
    path("session/<str:key>/teams/", views.assign_teams, name="assign_teams"),
    path("session/<str:key>/start/", views.start_session, name="start_session"),
    path("session/<str:key>/advance/", views.advance_session, name="advance_session"),
    path("session/<str:key>/abort/", views.abort_session, name="abort_session"),
    path("session/<str:key>/view/", views.session_view, name="session_view"),
    path("session/<str:key>/responses/", views.submit_response, name="submit_response"),
    path("session/<str:key>/results/", views.session_results, name="session_results"),
    path("session/<str:key>/events/", views.session_events, name="session_events"),
]
