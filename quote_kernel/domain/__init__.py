"""Pure domain core: values, policies, pricing, quotation model, clock."""
