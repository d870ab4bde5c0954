from django.urls import path

from . import views

app_name = "decks"

urlpatterns = [
    path("", views.deck_list, name="deck_list"),
    path("<int:deck_id>/", views.deck_detail, name="deck_detail"),
    path("<int:deck_id>/cards/", views.card_list, name="card_list"),
    path("<int:deck_id>/questions/", views.question_feed, name="question_feed"),
    path("cards/<int:card_id>/", views.card_detail, name="card_detail"),
    path("study/reviews/", views.record_review, name="record_review"),
    path("study/summary/", views.mastery_summary, name="mastery_summary"),
    path("study/queue/", views.review_queue, name="review_queue"),
    path("study/heatmap/", views.study_heatmap, name="study_heatmap"),
]
