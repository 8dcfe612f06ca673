from django.urls import path
from .views import search, typeahead, init_indices

urlpatterns = [
    path('search/', search, name='search'),
    path('search/typeahead/', typeahead, name='search-typeahead'),
    path('search/init/', init_indices, name='search-init'),
]
