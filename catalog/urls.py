from django.urls import path

from . import views

app_name = 'catalog'

urlpatterns = [
    path('books/', views.books_collection, name='books'),
    path('books/trending/', views.trending_books, name='trending'),
    path('books/<int:book_id>/', views.book_resource, name='book'),
    path('books/<int:book_id>/stats/', views.book_stats, name='book_stats'),
    path('books/<int:book_id>/chapters/', views.book_chapters, name='book_chapters'),
    path('books/<int:book_id>/like/', views.toggle_like, name='like'),
    path('books/<int:book_id>/bookmark/', views.toggle_bookmark, name='bookmark'),
    path('books/<int:book_id>/rating/', views.rate_book, name='rating'),
    path('books/<int:book_id>/comments/', views.book_comments, name='book_comments'),
    path('chapters/<int:chapter_id>/', views.chapter_resource, name='chapter'),
    path('media/', views.media_collection, name='media'),
    path('media/<int:media_id>/', views.media_resource, name='media_item'),
    path('comments/<int:comment_id>/', views.comment_resource, name='comment'),
    path('payments/intent/', views.create_payment_intent, name='payment_intent'),
    path('purchases/', views.create_purchase, name='purchases'),
    path('users/<int:user_id>/stats/', views.user_stats, name='user_stats'),
    path('users/<int:user_id>/books/', views.user_books, name='user_books'),
    path('users/<int:user_id>/bookmarks/', views.user_bookmarks, name='user_bookmarks'),
    path('users/<int:user_id>/purchases/', views.user_purchases, name='user_purchases'),
    path('users/<int:user_id>/follow/', views.toggle_follow, name='follow'),
]
