from django.contrib import admin

from .models import Book, Bookmark, Chapter, Comment, Like, Media, Purchase, Rating, SystemErrorLog


class ChapterInline(admin.TabularInline):
    model = Chapter
    extra = 0
    fields = ('order_index', 'title', 'word_count')
    readonly_fields = ('word_count',)


class MediaInline(admin.TabularInline):
    model = Media
    extra = 0
    fields = ('media_type', 'url', 'file_name', 'mime_type')


@admin.register(Book)
class BookAdmin(admin.ModelAdmin):
    list_display = ('title', 'author', 'genre', 'price', 'is_published', 'view_count', 'like_count', 'comment_count', 'rating', 'updated_at')
    list_filter = ('is_published', 'is_mature', 'genre', 'has_video', 'has_audio', 'has_images')
    search_fields = ('title', 'description', 'author__email')
    readonly_fields = ('view_count', 'like_count', 'comment_count', 'rating', 'rating_count')
    inlines = [ChapterInline, MediaInline]


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ('id', 'book', 'user', 'created_at')
    search_fields = ('book__title', 'user__email', 'content')


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
    list_display = ('id', 'book', 'user', 'amount', 'payment_intent_id', 'created_at')
    list_filter = ('created_at',)
    search_fields = ('book__title', 'user__email', 'payment_intent_id')


@admin.register(Rating)
class RatingAdmin(admin.ModelAdmin):
    list_display = ('book', 'user', 'score', 'updated_at')
    list_filter = ('score',)


@admin.register(SystemErrorLog)
class SystemErrorLogAdmin(admin.ModelAdmin):
    list_display = ('source', 'message', 'created_at')
    list_filter = ('source', 'created_at')
    search_fields = ('source', 'message')


admin.site.register(Like)
admin.site.register(Bookmark)
