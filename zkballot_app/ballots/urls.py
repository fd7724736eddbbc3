from django.urls import path

from ballots import views

urlpatterns = [
    path("", views.ballot_create, name="ballot-create"),
    path("<int:ballot_id>/", views.ballot_detail, name="ballot-detail"),
    path("<int:ballot_id>/open/", views.ballot_open, name="ballot-open"),
    path("<int:ballot_id>/close/", views.ballot_close, name="ballot-close"),
    path("<int:ballot_id>/terminate/", views.ballot_terminate, name="ballot-terminate"),
    path("<int:ballot_id>/vote/", views.ballot_vote, name="ballot-vote"),
    path("<int:ballot_id>/votes/", views.ballot_votes, name="ballot-votes"),
    path("<int:ballot_id>/votes/<int:index>/", views.ballot_vote_detail, name="ballot-vote-detail"),
    path("<int:ballot_id>/sum-proof/", views.ballot_sum_proof, name="ballot-sum-proof"),
    path("<int:ballot_id>/events/", views.ballot_events, name="ballot-events"),
]
