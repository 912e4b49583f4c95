from liftdesk.models.token import TOKEN_ROW_ID, StoredTokenPair
