"""StatJam clip worker: highlight clips from recorded game video"""
