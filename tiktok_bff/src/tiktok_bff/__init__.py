"""TikTok OAuth + video publishing backend-for-frontend."""
