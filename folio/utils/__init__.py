# Utils package for Folio
