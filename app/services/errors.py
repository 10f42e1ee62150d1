class InteractionStoreError(Exception):
    """Base class for errors raised by the authoritative interaction store"""


class PostNotFoundError(InteractionStoreError):
    def __init__(self, post_id: int):
        super().__init__(f"Post {post_id} not found")
        self.post_id = post_id


class CommentNotFoundError(InteractionStoreError):
    def __init__(self, comment_id: int):
        super().__init__(f"Comment {comment_id} not found")
        self.comment_id = comment_id


class InvalidCommentError(InteractionStoreError):
    pass


class CommentPermissionError(InteractionStoreError):
    pass
