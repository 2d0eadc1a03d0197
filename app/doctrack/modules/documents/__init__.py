"""
Document tracking module.

- Documents move between statuses through edits and three lifecycle actions
  (Receive -> In Process, Release -> Forwarded, Complete -> Completed)
- Every insert/update writes a history row from a store-side trigger
- The application reconciles that row with the action label and the actor
"""
